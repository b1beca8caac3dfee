"""Client-side chat core used by the Streamlit UI.

Holds the append-only message log for one session, talks to the relay over
HTTP and gates submissions so that only one reply is ever pending.  Voice
input/output is reached through an injected `SpeechCapability`; the default
`NullSpeech` simply does nothing.
"""

from __future__ import annotations

import enum
import json
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import requests
from loguru import logger

from .models import StructuredReply
from .response_parser import NO_EXPLANATION

DEFAULT_GREETING = (
    "Bonjour ! Je suis MathBot, ton assistant en mathématiques. "
    "Comment puis-je t'aider aujourd'hui ?"
)
APOLOGY = "Désolé, j'ai rencontré une erreur. Peux-tu réessayer ?"


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: str  # "user" | "assistant"
    text: str
    detail: str = ""


class TurnState(enum.Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting-reply"
    ERROR_DISPLAYED = "error-displayed"


###############################################################################
# Relay transport
###############################################################################


class RelayClient:
    def __init__(
        self,
        base_url: str,
        path: str = "/api/chat",
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.path = path
        self.configure(base_url, timeout)
        self._http = session or requests.Session()

    def configure(self, base_url: str, timeout: Optional[float] = None) -> None:
        self.url = f"{base_url.rstrip('/')}{self.path}"
        self.timeout = timeout

    def send(self, history: List[Dict[str, str]], context: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"messages": history}
        if context:
            payload["context"] = context
        r = self._http.post(
            self.url,
            json=payload,
            headers={"Content-Type": "application/json; charset=utf-8"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()


def decode_relay_payload(body: Dict[str, Any]) -> StructuredReply:
    """
    Pull the answer out of a relay success envelope.

    The message content is itself a JSON string; when it does not decode to an
    object it is shown as plain text with no explanation.
    """
    if not isinstance(body, dict):
        raise ValueError(f"unexpected relay response: {body!r}")
    if "error" in body:
        raise ValueError(f"relay returned an error: {body['error']}")
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError("relay response has no message content") from exc

    if not isinstance(content, str):
        raise ValueError("relay message content is not a string")

    try:
        data = json.loads(content)
    except ValueError:
        data = None
    if not isinstance(data, dict):
        return StructuredReply(quick_answer=content, explanation="")
    return StructuredReply(
        quick_answer=str(data.get("quickrep") or ""),
        explanation=str(data.get("explication") or ""),
    )


###############################################################################
# Speech capability
###############################################################################


class SpeechCapability(Protocol):
    available: bool

    def start_capture(self, on_transcript: Callable[[str], None]) -> None: ...

    def stop_capture(self) -> None: ...

    def speak(self, text: str) -> None: ...

    def cancel_speech(self) -> None: ...


class NullSpeech:
    """Speech is unavailable: every call is a no-op."""

    available = False

    def start_capture(self, on_transcript: Callable[[str], None]) -> None:
        pass

    def stop_capture(self) -> None:
        pass

    def speak(self, text: str) -> None:
        pass

    def cancel_speech(self) -> None:
        pass


###############################################################################
# Session
###############################################################################


class ChatSession:
    def __init__(
        self,
        relay: RelayClient,
        speech: Optional[SpeechCapability] = None,
        greeting: Optional[str] = DEFAULT_GREETING,
        apology: str = APOLOGY,
    ) -> None:
        self._relay = relay
        self._speech: SpeechCapability = speech or NullSpeech()
        self._apology = apology
        self._log: List[ChatMessage] = []
        self._local_ids: set[str] = set()
        self._lock = threading.Lock()

        self.state = TurnState.IDLE
        self.draft = ""
        self.context: Optional[str] = None
        self.selected_detail: Optional[str] = None
        self.listening = False
        self.speaking = False

        if greeting:
            self._append("assistant", greeting, local=True)

    # ------------------------------------------------------------------ #
    # log
    # ------------------------------------------------------------------ #
    @property
    def relay(self) -> RelayClient:
        return self._relay

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._log)

    @property
    def awaiting_reply(self) -> bool:
        return self.state is TurnState.AWAITING_REPLY

    @property
    def panel_open(self) -> bool:
        return self.selected_detail is not None

    def _append(self, role: str, text: str, detail: str = "", local: bool = False) -> ChatMessage:
        msg = ChatMessage(id=uuid.uuid4().hex, role=role, text=text, detail=detail)
        self._log.append(msg)
        if local:
            self._local_ids.add(msg.id)
        return msg

    def history(self) -> List[Dict[str, str]]:
        """Turns worth sending upstream; greeting and apologies stay local."""
        return [
            {"role": m.role, "content": m.text}
            for m in self._log
            if m.id not in self._local_ids
        ]

    # ------------------------------------------------------------------ #
    # turns
    # ------------------------------------------------------------------ #
    def submit(self, text: str) -> Optional[ChatMessage]:
        """
        Send one user turn and return the assistant message it produced.

        Returns None without touching the log when `text` is blank or when a
        previous turn is still pending; in the latter case the text is kept
        in `draft` so it is not lost.
        """
        if not text or not text.strip():
            return None

        with self._lock:
            if self.state is TurnState.AWAITING_REPLY:
                self.draft = text
                return None
            self.state = TurnState.AWAITING_REPLY
            self._append("user", text)
            self.draft = ""
            history = self.history()

        try:
            body = self._relay.send(history, self.context)
            reply = decode_relay_payload(body)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Chat turn failed: {}: {}", type(exc).__name__, exc)
            return self._fail_turn()
        except Exception:  # noqa: BLE001
            logger.exception("Chat turn failed unexpectedly")
            return self._fail_turn()

        detail = reply.explanation
        if not detail.strip() or detail == NO_EXPLANATION:
            detail = ""
        if reply.quick_answer.strip():
            text_out = reply.quick_answer
        else:
            text_out = detail or self._apology
        with self._lock:
            msg = self._append("assistant", text_out, detail=detail)
            self.state = TurnState.IDLE
        return msg

    def _fail_turn(self) -> ChatMessage:
        with self._lock:
            msg = self._append("assistant", self._apology, local=True)
            self.state = TurnState.ERROR_DISPLAYED
        return msg

    # ------------------------------------------------------------------ #
    # explanation panel
    # ------------------------------------------------------------------ #
    def open_explanation(self, message_id: str) -> Optional[str]:
        for msg in self._log:
            if msg.id == message_id and msg.detail:
                self.selected_detail = msg.detail
                return msg.detail
        return None

    def close_explanation(self) -> None:
        self.selected_detail = None
        self.stop_speaking()

    # ------------------------------------------------------------------ #
    # voice (best-effort)
    # ------------------------------------------------------------------ #
    def _on_transcript(self, transcript: str) -> None:
        self.draft = transcript
        self.listening = False

    def start_voice_capture(self) -> None:
        if not self._speech.available or self.listening:
            return
        self.listening = True
        self._speech.start_capture(self._on_transcript)

    def stop_voice_capture(self) -> None:
        if self.listening:
            self._speech.stop_capture()
        self.listening = False

    def speak_explanation(self) -> None:
        if not self._speech.available or not self.selected_detail:
            return
        self.speaking = True
        self._speech.speak(self.selected_detail)

    def stop_speaking(self) -> None:
        if self.speaking:
            self._speech.cancel_speech()
        self.speaking = False
