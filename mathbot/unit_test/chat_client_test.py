import json
import threading
from unittest.mock import Mock

import pytest
import requests

from mathbot.chat_client import (
    APOLOGY,
    DEFAULT_GREETING,
    ChatSession,
    NullSpeech,
    RelayClient,
    TurnState,
    decode_relay_payload,
)
from mathbot.response_parser import NO_EXPLANATION


def envelope(quickrep, explication, finish_reason="stop"):
    content = json.dumps({"quickrep": quickrep, "explication": explication}, ensure_ascii=False)
    return {
        "choices": [
            {
                "message": {"role": "assistant", "content": content},
                "index": 0,
                "finish_reason": finish_reason,
            }
        ]
    }


class FakeRelay:
    def __init__(self, response=None, error=None, gate=None):
        self.calls = []
        self.response = response
        self.error = error
        self.gate = gate
        self.entered = threading.Event()

    def send(self, history, context=None):
        self.calls.append((list(history), context))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.response


class FakeSpeech:
    available = True

    def __init__(self):
        self.spoken = []
        self.cancelled = 0
        self.stopped = 0
        self.on_transcript = None

    def start_capture(self, on_transcript):
        self.on_transcript = on_transcript

    def stop_capture(self):
        self.stopped += 1

    def speak(self, text):
        self.spoken.append(text)

    def cancel_speech(self):
        self.cancelled += 1


# --------------------------------------------------------------------------- #
# decode_relay_payload
# --------------------------------------------------------------------------- #


def test_decode_success_envelope():
    reply = decode_relay_payload(envelope("4", "2 + 2"))

    assert reply.quick_answer == "4"
    assert reply.explanation == "2 + 2"


def test_decode_plain_text_content():
    body = {"choices": [{"message": {"role": "assistant", "content": "juste du texte"}}]}

    reply = decode_relay_payload(body)

    assert reply.quick_answer == "juste du texte"
    assert reply.explanation == ""


@pytest.mark.parametrize("body", [{"error": "API key is required"}, {"choices": []}, {}, ["nope"]])
def test_decode_rejects_error_envelopes(body):
    with pytest.raises(ValueError):
        decode_relay_payload(body)


# --------------------------------------------------------------------------- #
# ChatSession
# --------------------------------------------------------------------------- #


def test_session_starts_with_greeting_only():
    session = ChatSession(FakeRelay())

    assert [m.text for m in session.messages] == [DEFAULT_GREETING]
    assert session.state is TurnState.IDLE
    assert session.history() == []


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_submission_is_a_noop(text):
    relay = FakeRelay(response=envelope("x", "y"))
    session = ChatSession(relay)

    assert session.submit(text) is None
    assert len(session.messages) == 1
    assert relay.calls == []


def test_end_to_end_turn_and_explanation_panel():
    relay = FakeRelay(response=envelope("8 × 7 = 56", "Étape 1: on fait 8 groupes de 7."))
    session = ChatSession(relay)

    msg = session.submit("8 fois 7")

    assert msg.role == "assistant"
    assert msg.text == "8 × 7 = 56"
    assert msg.detail == "Étape 1: on fait 8 groupes de 7."
    assert [m.role for m in session.messages] == ["assistant", "user", "assistant"]
    assert relay.calls == [([{"role": "user", "content": "8 fois 7"}], None)]
    assert session.state is TurnState.IDLE

    assert not session.panel_open
    assert session.open_explanation(msg.id) == msg.detail
    assert session.panel_open
    assert session.selected_detail == "Étape 1: on fait 8 groupes de 7."
    session.close_explanation()
    assert not session.panel_open


def test_history_carries_prior_turns_and_context():
    relay = FakeRelay(response=envelope("4", "2 + 2"))
    session = ChatSession(relay)
    session.context = "on révise les additions"

    session.submit("2 + 2")
    session.submit("et 3 + 3 ?")

    history, context = relay.calls[-1]
    assert history == [
        {"role": "user", "content": "2 + 2"},
        {"role": "assistant", "content": "4"},
        {"role": "user", "content": "et 3 + 3 ?"},
    ]
    assert context == "on révise les additions"


@pytest.mark.parametrize(
    "error",
    [
        requests.ConnectionError("relay unreachable"),
        requests.HTTPError("500 Server Error"),
        ValueError("relay returned an error: boom"),
    ],
)
def test_failure_appends_apology(error):
    relay = FakeRelay(error=error)
    session = ChatSession(relay)

    msg = session.submit("8 fois 7")

    assert msg.text == APOLOGY
    assert msg.detail == ""
    assert session.state is TurnState.ERROR_DISPLAYED
    assert session.open_explanation(msg.id) is None


def test_error_envelope_appends_apology_and_session_recovers():
    relay = FakeRelay(response={"error": "API key is required"})
    session = ChatSession(relay)

    assert session.submit("1 + 1").text == APOLOGY

    relay.response = envelope("2", "1 + 1 = 2")
    msg = session.submit("1 + 1 ?")

    assert msg.text == "2"
    assert session.state is TurnState.IDLE
    # the apology is not sent upstream
    assert relay.calls[-1][0] == [
        {"role": "user", "content": "1 + 1"},
        {"role": "user", "content": "1 + 1 ?"},
    ]


def test_blank_quick_answer_uses_explanation():
    session = ChatSession(FakeRelay(response=envelope("", "On compte sur ses doigts.")))

    msg = session.submit("combien ?")

    assert msg.text == "On compte sur ses doigts."
    assert msg.text


def test_second_submission_while_pending_is_ignored_but_kept_in_draft():
    gate = threading.Event()
    relay = FakeRelay(response=envelope("56", "8 groupes de 7"), gate=gate)
    session = ChatSession(relay)

    worker = threading.Thread(target=session.submit, args=("8 fois 7",))
    worker.start()
    assert relay.entered.wait(timeout=5)
    assert session.awaiting_reply

    assert session.submit("9 fois 3") is None
    assert session.draft == "9 fois 3"

    gate.set()
    worker.join(timeout=5)

    assert len(relay.calls) == 1
    assert [m.text for m in session.messages if m.role == "user"] == ["8 fois 7"]
    assert session.state is TurnState.IDLE
    assert session.draft == "9 fois 3"


# --------------------------------------------------------------------------- #
# voice
# --------------------------------------------------------------------------- #


def test_null_speech_does_nothing():
    session = ChatSession(FakeRelay(response=envelope("4", "2 + 2")), speech=NullSpeech())
    msg = session.submit("2 + 2")
    session.open_explanation(msg.id)

    session.start_voice_capture()
    session.speak_explanation()

    assert not session.listening
    assert not session.speaking


def test_voice_capture_fills_draft_and_speech_reads_explanation():
    speech = FakeSpeech()
    session = ChatSession(FakeRelay(response=envelope("4", "2 + 2 = 4")), speech=speech)

    session.start_voice_capture()
    assert session.listening
    speech.on_transcript("deux plus deux")
    assert session.draft == "deux plus deux"
    assert not session.listening

    msg = session.submit(session.draft)
    session.open_explanation(msg.id)
    session.speak_explanation()
    assert speech.spoken == ["2 + 2 = 4"]

    session.close_explanation()
    assert speech.cancelled == 1
    assert not session.speaking


# --------------------------------------------------------------------------- #
# RelayClient
# --------------------------------------------------------------------------- #


def test_relay_client_posts_history():
    http = Mock(spec=requests.Session)
    response = Mock()
    response.json.return_value = envelope("4", "2 + 2")
    http.post.return_value = response
    relay = RelayClient("http://localhost:8000/", session=http)

    body = relay.send([{"role": "user", "content": "2 + 2"}], context="note")

    assert body == envelope("4", "2 + 2")
    http.post.assert_called_once()
    args, kwargs = http.post.call_args
    assert args[0] == "http://localhost:8000/api/chat"
    assert kwargs["json"] == {"messages": [{"role": "user", "content": "2 + 2"}], "context": "note"}
    assert kwargs["timeout"] is None
    response.raise_for_status.assert_called_once()


def test_relay_client_can_be_repointed():
    http = Mock(spec=requests.Session)
    http.post.return_value = Mock(**{"json.return_value": envelope("4", "2 + 2")})
    session = ChatSession(RelayClient("http://localhost:8000", session=http))

    session.relay.configure("http://relay.example:9000/", timeout=12.5)
    session.submit("2 + 2")

    args, kwargs = http.post.call_args
    assert args[0] == "http://relay.example:9000/api/chat"
    assert kwargs["timeout"] == 12.5


# --------------------------------------------------------------------------- #
# failure recovery
# --------------------------------------------------------------------------- #


def test_unexpected_relay_exception_does_not_leave_session_stuck():
    relay = FakeRelay(error=RuntimeError("boom"))
    session = ChatSession(relay)

    msg = session.submit("8 fois 7")

    assert msg.text == APOLOGY
    assert session.state is TurnState.ERROR_DISPLAYED
    assert not session.awaiting_reply

    relay.error = None
    relay.response = envelope("27", "9 + 9 + 9")
    assert session.submit("9 fois 3").text == "27"
    assert len(relay.calls) == 2


@pytest.mark.parametrize("explication", [NO_EXPLANATION, "", "   "])
def test_unrecoverable_explanation_becomes_empty_detail(explication):
    relay = FakeRelay(response=envelope("Je ne sais pas, désolé.", explication))
    session = ChatSession(relay)

    msg = session.submit("combien font 8 fois 7 ?")

    assert msg.text == "Je ne sais pas, désolé."
    assert msg.detail == ""
    assert session.open_explanation(msg.id) is None
    assert not session.panel_open
