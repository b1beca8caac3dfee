import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Route loguru to stderr at `level`, replacing any previously added sinks."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}",
    )
