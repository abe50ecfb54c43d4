"""Recording capture sink: persists both audio directions of a finished session."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from integrations.blob_store import BlobStore
from telephony.errors import StorageError
from telephony.session import FinalizedAudio

LOGGER = logging.getLogger(__name__)


def raw_audio_mime(sample_rate: int = 8000, sample_width: int = 2, channels: int = 1) -> str:
    """RFC 3551 linear PCM media type, e.g. ``audio/L16;rate=8000;channels=1``."""

    return f"audio/L{sample_width * 8};rate={sample_rate};channels={channels}"


RAW_AUDIO_MIME = raw_audio_mime()


@dataclass(frozen=True, slots=True)
class RecordingNames:
    inbound: str | None = None
    outbound: str | None = None


def recording_name(session_id: str, direction: str) -> str:
    return f"{session_id}-{direction}"


class RecordingSink:
    """Uploads the inbound and outbound blobs of a session, one attempt each.

    Upload failures never propagate: a lost recording must not affect call
    teardown.
    """

    def __init__(self, store: BlobStore, *, content_type: str = RAW_AUDIO_MIME) -> None:
        self._store = store
        self._content_type = content_type

    async def flush(self, session_id: str, audio: FinalizedAudio) -> RecordingNames:
        inbound = await self._upload(recording_name(session_id, "in"), audio.inbound)
        outbound = await self._upload(recording_name(session_id, "out"), audio.outbound)
        return RecordingNames(inbound=inbound, outbound=outbound)

    async def _upload(self, name: str, data: bytes) -> str | None:
        try:
            await self._store.upload(name, data, content_type=self._content_type)
        except StorageError as exc:
            LOGGER.error("Recording upload %s failed: %s", name, exc.detail)
            return None
        LOGGER.info("Recording %s stored (%d bytes)", name, len(data))
        return name
