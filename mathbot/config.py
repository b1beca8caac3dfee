import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env from the project root directory
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")

APP_NAME = "MathBot"
APP_VERSION = "1.0.0"


class Settings(BaseModel):
    api_key: str = ""
    model: str = "mistral-medium-latest"
    base_url: str = "https://api.mistral.ai/v1"
    temperature: float = 0.7
    log_level: str = "INFO"

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key.strip())

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_key=os.getenv("MISTRAL_API_KEY", ""),
            model=os.getenv("MATHBOT_MODEL", cls.model_fields["model"].default),
            base_url=os.getenv("MATHBOT_BASE_URL", cls.model_fields["base_url"].default),
            temperature=float(os.getenv("MATHBOT_TEMPERATURE", "0.7")),
            log_level=os.getenv("MATHBOT_LOG_LEVEL", "INFO"),
        )


def get_settings() -> Settings:
    # Read on every call so a key exported after startup is picked up.
    return Settings.from_env()
