# mathbot/agents.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from loguru import logger

from .errors import UpstreamError
from .models import HistoryMessage, StructuredReply
from .prompt_builder import PromptBuilder
from .response_parser import ResponseParser


@dataclass(frozen=True)
class AgentReply:
    reply: StructuredReply
    finish_reason: Optional[str] = None


class TutorAgent:
    """
    One relay turn against the upstream model.

    Responsibilities
    ----------------
    1. Build prompt  (template + context + history)      -> PromptBuilder
    2. Call the LLM exactly once, no retry               -> BaseChatModel
    3. Shape the raw text into quick answer/explanation  -> ResponseParser
    """

    def __init__(
        self,
        llm: BaseChatModel,
        builder: PromptBuilder,
        parser: ResponseParser,
    ) -> None:
        self._llm = llm
        self._builder = builder
        self._parser = parser

    # --------------------------------------------------------------------- #
    # public API
    # --------------------------------------------------------------------- #
    async def reply(
        self,
        history: Sequence[HistoryMessage],
        context: Optional[str] = None,
    ) -> AgentReply:
        """
        Handle ONE relay call.

        Parameters
        ----------
        history : sequence of HistoryMessage
            Prior turns from the client, oldest first.
        context : str | None
            Optional note carried over from an earlier phase.

        Returns
        -------
        AgentReply
            The normalized answer plus the provider's finish reason.

        Raises
        ------
        UpstreamError
            If the provider call fails or returns no usable content.
        """
        messages: list[BaseMessage] = self._builder.build(history, context)
        logger.debug("Sending {} messages to the model", len(messages))

        try:
            llm_reply: AIMessage = await self._llm.ainvoke(messages)  # type: ignore[assignment]
        except openai.OpenAIError as exc:
            logger.error("Model provider call failed: {}: {}", type(exc).__name__, exc)
            raise UpstreamError() from exc

        content = getattr(llm_reply, "content", None)
        if not isinstance(content, str) or not content:
            logger.error("Model provider returned no message content: {!r}", llm_reply)
            raise UpstreamError("Invalid response from the model provider")

        metadata = getattr(llm_reply, "response_metadata", None) or {}
        return AgentReply(
            reply=self._parser.parse(content),
            finish_reason=metadata.get("finish_reason"),
        )
