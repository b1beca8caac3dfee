import json
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[HistoryMessage]
    context: Optional[str] = Field(None, description="Note carried over from a previous phase")


class StructuredReply(BaseModel):
    """The two-field answer the model is asked to embed in its reply."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    quick_answer: str = Field("", alias="quickrep")
    explanation: str = Field("", alias="explication")

    def to_wire(self) -> str:
        return json.dumps(
            {"quickrep": self.quick_answer, "explication": self.explanation},
            ensure_ascii=False,
        )


class ResponseMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class Choice(BaseModel):
    message: ResponseMessage
    index: int = 0
    finish_reason: Optional[str] = None


class ChatResponse(BaseModel):
    choices: List[Choice]


class ErrorResponse(BaseModel):
    error: str
