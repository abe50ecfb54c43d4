"""Per-call audio session state.

Sessions live in a single-process store. All mutating methods are synchronous,
so on one event loop each call runs to completion without interleaving; this is
what makes ``finalize`` a one-shot even when both directions race to close.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

LOGGER = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"


@dataclass(slots=True)
class AudioSession:
    session_id: str
    caller_identity: str
    hospital_context: str
    call_id: str | None = None
    status: SessionStatus = SessionStatus.ONGOING
    inbound: list[bytes] = field(default_factory=list)
    outbound: list[bytes] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class FinalizedAudio:
    inbound: bytes = b""
    outbound: bytes = b""


class SessionStore:
    """In-memory registry of live audio sessions keyed by session id."""

    def __init__(self, *, default_hospital_context: str = "default") -> None:
        self._default_hospital_context = default_hospital_context
        self._sessions: dict[str, AudioSession] = {}

    def create(
        self,
        caller_identity: str,
        hospital_context: str | None = None,
        *,
        call_id: str | None = None,
    ) -> str:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = AudioSession(
            session_id=session_id,
            caller_identity=caller_identity,
            hospital_context=hospital_context or self._default_hospital_context,
            call_id=call_id,
        )
        LOGGER.info("Session %s created caller=%s call=%s", session_id, caller_identity, call_id)
        return session_id

    def get(self, session_id: str) -> AudioSession | None:
        return self._sessions.get(session_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def append_inbound(self, session_id: str, frame: bytes) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.inbound.append(bytes(frame))
        return True

    def append_outbound(self, session_id: str, frame: bytes) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.outbound.append(bytes(frame))
        return True

    def finalize(self, session_id: str) -> FinalizedAudio:
        """Mark the session completed and hand back its audio exactly once."""

        session = self._sessions.pop(session_id, None)
        if session is None:
            return FinalizedAudio()

        session.status = SessionStatus.COMPLETED
        session.ended_at = datetime.now(timezone.utc)
        audio = FinalizedAudio(
            inbound=b"".join(session.inbound),
            outbound=b"".join(session.outbound),
        )
        session.inbound.clear()
        session.outbound.clear()
        LOGGER.info(
            "Session %s finalized inbound=%d bytes outbound=%d bytes",
            session_id,
            len(audio.inbound),
            len(audio.outbound),
        )
        return audio
