"""Repository for persisting call session records."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from db.base import get_session_factory
from db.models import CallSession
from telephony.errors import StorageError
from telephony.recording import RecordingNames
from telephony.session import AudioSession


class CallSessionRepository:
    """Async repository encapsulating call session storage operations."""

    async def create_session(self, session: AudioSession) -> None:
        record = CallSession(
            session_id=session.session_id,
            call_id=session.call_id,
            hospital_id=session.hospital_context,
            caller_phone=session.caller_identity,
            status=session.status.value,
            started_at=session.started_at,
        )
        try:
            async with get_session_factory()() as db:
                db.add(record)
                await db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not insert session {session.session_id}: {exc}") from exc

    async def complete_session(
        self,
        session: AudioSession,
        *,
        summary: str | None,
        recordings: RecordingNames,
    ) -> None:
        try:
            async with get_session_factory()() as db:
                record = await self._get(db, session.session_id)
                if record is None:
                    raise StorageError(f"Session {session.session_id} has no record")
                record.status = session.status.value
                record.ended_at = session.ended_at
                record.ai_summary = summary
                record.inbound_recording = recordings.inbound
                record.outbound_recording = recordings.outbound
                await db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not update session {session.session_id}: {exc}") from exc

    async def get_session(self, session_id: str) -> CallSession | None:
        try:
            async with get_session_factory()() as db:
                return await self._get(db, session_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not load session {session_id}: {exc}") from exc

    @staticmethod
    async def _get(db, session_id: str) -> CallSession | None:
        query = select(CallSession).where(CallSession.session_id == session_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()
