"""Wire envelopes for the streaming speech endpoint.

Client -> server messages are JSON text frames:

- ``{"type": "system.prompt", "voice": ..., "content": ...}`` once on connect
- ``{"type": "input_audio_buffer.append", "audio": <base64>}`` per caller frame
- ``{"type": "input_audio_buffer.commit"}`` then ``{"type": "response.create"}``
  when the call ends

Server -> client ``response.audio.delta`` messages carry base64 audio; every
other type is informational.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

AUDIO_DELTA = "response.audio.delta"
TRANSCRIPT_DONE = "response.audio_transcript.done"


@dataclass(frozen=True, slots=True)
class ServerEvent:
    type: str
    audio: bytes | None = None
    transcript: str | None = None


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


def system_prompt(voice: str, content: str) -> str:
    return _dump({"type": "system.prompt", "voice": voice, "content": content})


def append_audio(frame: bytes) -> str:
    return _dump(
        {
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(frame).decode("ascii"),
        }
    )


def commit_input() -> str:
    return _dump({"type": "input_audio_buffer.commit"})


def create_response() -> str:
    return _dump({"type": "response.create"})


def parse_server_event(message: str | bytes) -> ServerEvent | None:
    """Parse one server message; anything malformed yields ``None``."""

    if not isinstance(message, str):
        return None
    try:
        data = json.loads(message)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        return None

    if event_type == AUDIO_DELTA:
        payload = data.get("audio", data.get("delta"))
        if not isinstance(payload, str) or not payload:
            return None
        try:
            audio = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            return None
        return ServerEvent(type=event_type, audio=audio)

    if event_type == TRANSCRIPT_DONE:
        transcript = data.get("transcript")
        if isinstance(transcript, str) and transcript.strip():
            return ServerEvent(type=event_type, transcript=transcript.strip())

    return ServerEvent(type=event_type)
