from __future__ import annotations

import base64
import json

import pytest

from integrations import speech_protocol


def test_client_envelopes():
    assert json.loads(speech_protocol.system_prompt("alloy", "Be kind.")) == {
        "type": "system.prompt",
        "voice": "alloy",
        "content": "Be kind.",
    }
    assert json.loads(speech_protocol.append_audio(b"\x00\xff")) == {
        "type": "input_audio_buffer.append",
        "audio": base64.b64encode(b"\x00\xff").decode("ascii"),
    }
    assert json.loads(speech_protocol.commit_input()) == {"type": "input_audio_buffer.commit"}
    assert json.loads(speech_protocol.create_response()) == {"type": "response.create"}


def test_audio_delta_is_decoded():
    message = json.dumps({"type": "response.audio.delta", "audio": base64.b64encode(b"XY").decode()})

    event = speech_protocol.parse_server_event(message)

    assert event.type == "response.audio.delta"
    assert event.audio == b"XY"


def test_transcript_done_is_collected():
    message = json.dumps({"type": "response.audio_transcript.done", "transcript": " Hello caller. "})

    event = speech_protocol.parse_server_event(message)

    assert event.audio is None
    assert event.transcript == "Hello caller."


def test_unknown_types_are_informational():
    event = speech_protocol.parse_server_event('{"type": "session.updated"}')

    assert event.type == "session.updated"
    assert event.audio is None
    assert event.transcript is None


@pytest.mark.parametrize(
    "message",
    [
        "not json",
        "[1, 2, 3]",
        '{"audio": "WFk="}',
        '{"type": ""}',
        '{"type": "response.audio.delta"}',
        '{"type": "response.audio.delta", "audio": "***"}',
        b'{"type": "response.audio.delta", "audio": "WFk="}',
    ],
)
def test_malformed_messages_are_ignored(message):
    assert speech_protocol.parse_server_event(message) is None
