from contextlib import asynccontextmanager

from fastapi import Depends
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from loguru import logger

from .agents import TutorAgent
from .config import APP_NAME, APP_VERSION, Settings, get_settings
from .errors import ConfigurationError
from .logging_setup import configure_logging
from .prompt_builder import PromptBuilder
from .response_parser import ResponseParser


def prompt_builder() -> PromptBuilder:
    return PromptBuilder()


def response_parser() -> ResponseParser:
    return ResponseParser()


def chat_model(settings: Settings = Depends(get_settings)) -> BaseChatModel:
    if not settings.has_credential:
        logger.error("Refusing chat request: MISTRAL_API_KEY is not set")
        raise ConfigurationError()
    return ChatOpenAI(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        temperature=settings.temperature,
        max_retries=0,
    )


def tutor_agent(
    llm: BaseChatModel = Depends(chat_model),
    builder: PromptBuilder = Depends(prompt_builder),
    parser: ResponseParser = Depends(response_parser),
) -> TutorAgent:
    return TutorAgent(llm, builder, parser)


@asynccontextmanager
async def lifespan(app):
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting {APP_NAME} v{APP_VERSION} (model={settings.model})")
    if not settings.has_credential:
        logger.warning("MISTRAL_API_KEY environment variable is not set; chat requests will fail")
    try:
        yield
    finally:
        logger.info("Shutting down")
