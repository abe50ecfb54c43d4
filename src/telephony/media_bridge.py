"""Per-call bridge between the call-control media stream and the speech endpoint.

Lifecycle::

    AWAITING_STREAM -> STREAMING -> CLOSING -> CLOSED

``run`` is the single owner task of a call: it creates the audio session,
relays caller frames, and performs the teardown exactly once. Everything else
(the speech endpoint reader, the control plane) can only *request* a close.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Protocol

from starlette.websockets import WebSocketDisconnect

from integrations.speech_endpoint import AudioHandler, CloseHandler, SpeechEndpointClient
from telephony.errors import SpeechEndpointConnectError, StorageError
from telephony.events import CallInfo
from telephony.recording import RecordingNames, RecordingSink
from telephony.session import AudioSession, FinalizedAudio, SessionStore

LOGGER = logging.getLogger(__name__)

_SEND_ERRORS = (RuntimeError, OSError, WebSocketDisconnect)


class BridgeState(str, Enum):
    AWAITING_STREAM = "awaiting_stream"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class TelephonySocket(Protocol):
    """The subset of ``starlette.websockets.WebSocket`` the bridge uses."""

    async def receive(self) -> dict[str, Any]: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class SessionRecords(Protocol):
    async def create_session(self, session: AudioSession) -> None: ...

    async def complete_session(
        self,
        session: AudioSession,
        *,
        summary: str | None,
        recordings: RecordingNames,
    ) -> None: ...


class SpeechClientFactory(Protocol):
    def __call__(
        self,
        *,
        hospital_context: str,
        on_audio: AudioHandler,
        on_closed: CloseHandler,
    ) -> SpeechEndpointClient: ...


class MediaBridge:
    """Relays one call's audio in both directions and captures it."""

    def __init__(
        self,
        call: CallInfo,
        *,
        sessions: SessionStore,
        sink: RecordingSink,
        speech_factory: SpeechClientFactory,
        records: SessionRecords | None = None,
        record_timeout: float = 10.0,
    ) -> None:
        self.call = call
        self._sessions = sessions
        self._sink = sink
        self._speech_factory = speech_factory
        self._records = records
        self._record_timeout = record_timeout
        self._record_task: asyncio.Task | None = None

        self.state = BridgeState.AWAITING_STREAM
        self.close_reason: str | None = None
        self.session_id: str | None = None
        self.session: AudioSession | None = None
        self.speech: SpeechEndpointClient | None = None

        self._telephony: TelephonySocket | None = None
        self._telephony_closed = False
        self._closing = asyncio.Event()
        self._torn_down = False

    async def run(self, websocket: TelephonySocket) -> None:
        """Serve an accepted media connection until the call is over."""

        self._telephony = websocket
        if self._closing.is_set():
            await self._close_telephony()
            self._set_state(BridgeState.CLOSED)
            return

        self.session_id = self._sessions.create(
            self.call.caller_identity,
            self.call.hospital_context,
            call_id=self.call.call_id,
        )
        self.session = self._sessions.get(self.session_id)
        self.speech = self._speech_factory(
            hospital_context=self.session.hospital_context,
            on_audio=self._on_speech_audio,
            on_closed=self._on_speech_closed,
        )
        self._set_state(BridgeState.STREAMING)
        # The record insert must not hold up the live call.
        self._record_task = asyncio.create_task(self._record_start())

        connect_task = asyncio.create_task(self._open_speech())
        inbound_task = asyncio.create_task(self._relay_inbound())
        closing_task = asyncio.create_task(self._closing.wait())
        try:
            await asyncio.wait({inbound_task, closing_task}, return_when=asyncio.FIRST_COMPLETED)
            if inbound_task.done():
                if not inbound_task.cancelled() and inbound_task.exception() is not None:
                    LOGGER.error(
                        "Inbound relay failed for call %s",
                        self.call.call_id,
                        exc_info=inbound_task.exception(),
                    )
                    self.request_close("telephony error")
                else:
                    self.request_close("telephony closed")
        finally:
            for task in (inbound_task, closing_task, connect_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(inbound_task, closing_task, connect_task, return_exceptions=True)
            await self._teardown()

    def request_close(self, reason: str) -> None:
        """Move to CLOSING; the owner task finishes teardown. Safe to call repeatedly."""

        if self.state in (BridgeState.CLOSING, BridgeState.CLOSED) or self._closing.is_set():
            return
        LOGGER.info("Call %s closing: %s", self.call.call_id, reason)
        self.close_reason = reason
        if self.state is BridgeState.STREAMING:
            self._set_state(BridgeState.CLOSING)
        self._closing.set()

    async def _open_speech(self) -> None:
        try:
            await self.speech.connect()
        except SpeechEndpointConnectError as exc:
            LOGGER.error("Call %s: %s", self.call.call_id, exc.detail)
            self.request_close("speech endpoint unavailable")
        except Exception:
            LOGGER.exception("Call %s speech endpoint connect crashed", self.call.call_id)
            self.request_close("speech endpoint error")

    async def _relay_inbound(self) -> None:
        while True:
            message = await self._telephony.receive()
            if message["type"] == "websocket.disconnect":
                self._telephony_closed = True
                return

            frame = message.get("bytes")
            if frame is not None:
                if self.state is not BridgeState.STREAMING:
                    return
                self._sessions.append_inbound(self.session_id, frame)
                await self.speech.send_audio(frame)
                continue

            text = message.get("text")
            if text is not None:
                self._handle_control_frame(text)

    def _handle_control_frame(self, text: str) -> None:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.debug("Call %s non-JSON control frame: %.80s", self.call.call_id, text)
            return
        if not isinstance(data, dict):
            return
        LOGGER.info(
            "Call %s control frame event=%s",
            self.call.call_id,
            data.get("event") or data.get("type"),
        )

    async def _on_speech_audio(self, frame: bytes) -> None:
        if self.state is not BridgeState.STREAMING:
            return
        self._sessions.append_outbound(self.session_id, frame)
        try:
            await self._telephony.send_bytes(frame)
        except _SEND_ERRORS as exc:
            LOGGER.info("Call %s telephony send failed: %s", self.call.call_id, exc)
            self.request_close("telephony send failed")

    def _on_speech_closed(self, reason: str) -> None:
        self.request_close(reason)

    async def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        if self.state is BridgeState.STREAMING:
            self._set_state(BridgeState.CLOSING)

        audio = self._sessions.finalize(self.session_id)
        await asyncio.gather(self._close_telephony(), self._end_speech())
        await self._persist(audio)
        self._set_state(BridgeState.CLOSED)
        if self.speech is not None and self.speech.dropped_frames:
            LOGGER.info(
                "Call %s dropped %d caller frames", self.call.call_id, self.speech.dropped_frames
            )

    async def _close_telephony(self) -> None:
        if self._telephony_closed or self._telephony is None:
            return
        self._telephony_closed = True
        try:
            await self._telephony.close(code=1000)
        except _SEND_ERRORS as exc:
            LOGGER.debug("Call %s telephony close: %s", self.call.call_id, exc)

    async def _end_speech(self) -> None:
        if self.speech is None:
            return
        try:
            await self.speech.end_call()
        except Exception:
            LOGGER.exception("Call %s speech endpoint shutdown failed", self.call.call_id)

    async def _record_start(self) -> None:
        if self._records is None:
            return
        try:
            await asyncio.wait_for(
                self._records.create_session(self.session), timeout=self._record_timeout
            )
        except TimeoutError:
            LOGGER.error(
                "Session %s record insert timed out after %.1fs", self.session_id, self._record_timeout
            )
        except StorageError as exc:
            LOGGER.error("Session %s record insert failed: %s", self.session_id, exc.detail)
        except Exception:
            LOGGER.exception("Session %s record insert crashed", self.session_id)

    async def _persist(self, audio: FinalizedAudio) -> None:
        # Recordings and the session record fail independently.
        try:
            recordings = await self._sink.flush(self.session_id, audio)
        except Exception:
            LOGGER.exception("Session %s recording flush crashed", self.session_id)
            recordings = RecordingNames()

        if self._records is None:
            return
        if self._record_task is not None:
            await self._record_task
        summary = " ".join(self.speech.transcripts) if self.speech and self.speech.transcripts else None
        try:
            await self._records.complete_session(
                self.session, summary=summary, recordings=recordings
            )
        except StorageError as exc:
            LOGGER.error("Session %s record update failed: %s", self.session_id, exc.detail)
        except Exception:
            LOGGER.exception("Session %s record update crashed", self.session_id)

    def _set_state(self, state: BridgeState) -> None:
        if state is self.state:
            return
        LOGGER.debug("Call %s %s -> %s", self.call.call_id, self.state.value, state.value)
        self.state = state
