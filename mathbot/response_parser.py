import json
import re
from typing import Any, List

from langchain_core.output_parsers import BaseOutputParser
from loguru import logger

from .models import StructuredReply

NO_EXPLANATION = "no detailed explanation available"

FENCED_JSON_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)


def extract_payload_candidates(text: str) -> List[str]:
    """
    Return the substrings that may hold the structured payload, best first:
    the body of a ```json fence, then everything from the first "{" to the
    last "}".
    """
    candidates: List[str] = []

    fenced = FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    return candidates


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def extract_reply(text: str) -> StructuredReply:
    """Never raises; falls back to the raw text when no payload decodes."""
    for candidate in extract_payload_candidates(text):
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if not isinstance(data, dict):
            continue
        return StructuredReply(
            quick_answer=_as_text(data.get("quickrep")),
            explanation=_as_text(data.get("explication")),
        )

    return StructuredReply(quick_answer=text, explanation=NO_EXPLANATION)


class ResponseParser(BaseOutputParser[StructuredReply]):
    """Turns raw model text into a StructuredReply, tolerating free-form answers."""

    def parse(self, text: str) -> StructuredReply:
        reply = extract_reply(text)
        if reply.explanation == NO_EXPLANATION and reply.quick_answer == text:
            logger.warning("Model reply had no structured payload, using raw text")
        return reply

    @property
    def _type(self) -> str:
        return "mathbot_structured_reply"
