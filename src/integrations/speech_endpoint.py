"""Streaming connection to the remote speech/AI endpoint, one per call."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import websockets

from config.settings import Settings
from integrations import speech_protocol
from prompts.loader import load_prompt
from telephony.errors import SpeechEndpointConnectError

LOGGER = logging.getLogger(__name__)

AudioHandler = Callable[[bytes], Awaitable[None]]
CloseHandler = Callable[[str], None]


class SpeechEndpointClient:
    """Owns the speech-endpoint WebSocket for the lifetime of one session.

    Frames that arrive before the connection is open are held in a bounded FIFO
    queue and flushed in order once the init envelope is sent. When the queue is
    full the oldest frame is dropped; ``preconnect_max_frames=0`` drops every
    early frame. Dropped frames are counted in ``dropped_frames``.
    """

    def __init__(
        self,
        url: str,
        *,
        voice: str,
        instructions: str,
        on_audio: AudioHandler,
        on_closed: CloseHandler,
        api_key: str | None = None,
        connect_timeout: float = 10.0,
        preconnect_max_frames: int = 50,
        connect: Callable[..., Awaitable[Any]] = websockets.connect,
    ) -> None:
        self._url = url
        self._voice = voice
        self._instructions = instructions
        self._on_audio = on_audio
        self._on_closed = on_closed
        self._api_key = api_key
        self._connect_timeout = connect_timeout
        self._preconnect_max_frames = preconnect_max_frames
        self._connect = connect

        self._ws: Any = None
        self._open = False
        self._ended = False
        self._closed_notified = False
        self._pending: deque[bytes] = deque()
        self._reader: asyncio.Task | None = None

        self.dropped_frames = 0
        self.transcripts: list[str] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        hospital_context: str,
        on_audio: AudioHandler,
        on_closed: CloseHandler,
    ) -> SpeechEndpointClient:
        return cls(
            settings.speech_endpoint_url,
            voice=settings.speech_voice,
            instructions=load_prompt(settings.speech_persona_prompt, hospital=hospital_context),
            on_audio=on_audio,
            on_closed=on_closed,
            api_key=settings.speech_endpoint_api_key,
            connect_timeout=settings.speech_connect_timeout_seconds,
            preconnect_max_frames=settings.speech_preconnect_max_frames,
        )

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def pending_frames(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        """Open the connection, send the persona envelope and start reading."""

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else None
        try:
            ws = await asyncio.wait_for(
                self._connect(self._url, additional_headers=headers),
                timeout=self._connect_timeout,
            )
        except TimeoutError as exc:
            raise SpeechEndpointConnectError(
                f"Timed out after {self._connect_timeout:.1f}s connecting to speech endpoint"
            ) from exc
        except (OSError, websockets.InvalidHandshake, websockets.InvalidURI) as exc:
            raise SpeechEndpointConnectError(f"Speech endpoint connect failed: {exc}") from exc

        if self._ended:
            await ws.close()
            return

        self._ws = ws
        try:
            await ws.send(speech_protocol.system_prompt(self._voice, self._instructions))
            # Frames queued while draining keep their place behind older ones.
            while self._pending:
                await ws.send(speech_protocol.append_audio(self._pending.popleft()))
        except websockets.ConnectionClosed as exc:
            await ws.close()
            raise SpeechEndpointConnectError(f"Speech endpoint closed during setup: {exc}") from exc

        self._open = True
        self._reader = asyncio.create_task(self._read_loop())
        LOGGER.info("Speech endpoint connected: %s", self._url)

    async def send_audio(self, frame: bytes) -> None:
        if self._ended:
            self.dropped_frames += 1
            return

        if not self._open:
            if self._preconnect_max_frames <= 0:
                self.dropped_frames += 1
                return
            if len(self._pending) >= self._preconnect_max_frames:
                self._pending.popleft()
                self.dropped_frames += 1
            self._pending.append(frame)
            return

        try:
            await self._ws.send(speech_protocol.append_audio(frame))
        except websockets.ConnectionClosed:
            # The reader observes the close and reports it.
            self.dropped_frames += 1

    async def end_call(self) -> None:
        """Ask the endpoint to flush its reply, then close unconditionally."""

        if self._ended:
            return
        self._ended = True
        self._pending.clear()

        ws = self._ws
        if ws is not None:
            try:
                await ws.send(speech_protocol.commit_input())
                await ws.send(speech_protocol.create_response())
            except (websockets.ConnectionClosed, OSError) as exc:
                LOGGER.debug("Speech endpoint end-of-call messages not delivered: %s", exc)
            finally:
                self._open = False
                await ws.close()

        reader = self._reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def _read_loop(self) -> None:
        reason = "speech endpoint closed"
        try:
            async for message in self._ws:
                await self._dispatch(message)
        except websockets.ConnectionClosed as exc:
            reason = f"speech endpoint closed: {exc}"
        except asyncio.CancelledError:
            reason = "speech endpoint reader cancelled"
            raise
        except Exception:
            LOGGER.exception("Speech endpoint reader crashed")
            reason = "speech endpoint error"
        finally:
            self._open = False
            self._notify_closed(reason)

    async def _dispatch(self, message: str | bytes) -> None:
        event = speech_protocol.parse_server_event(message)
        if event is None:
            LOGGER.debug("Ignoring malformed speech endpoint message")
            return
        if event.audio is not None:
            await self._on_audio(event.audio)
        elif event.transcript is not None:
            self.transcripts.append(event.transcript)
        else:
            LOGGER.debug("Speech endpoint event %s", event.type)

    def _notify_closed(self, reason: str) -> None:
        if self._closed_notified:
            return
        self._closed_notified = True
        if not self._ended:
            LOGGER.warning("%s", reason)
        self._on_closed(reason)
