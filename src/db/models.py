"""SQLAlchemy models for call session records."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class CallSession(Base):
    """One relayed call, from answer to finalize."""

    __tablename__ = "call_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    call_id: Mapped[str | None] = mapped_column(String(128), index=True)
    hospital_id: Mapped[str] = mapped_column(String(128))
    caller_phone: Mapped[str] = mapped_column(String(128))
    status: Mapped[str] = mapped_column(String(16))
    ai_summary: Mapped[str | None] = mapped_column(Text())
    inbound_recording: Mapped[str | None] = mapped_column(String(255))
    outbound_recording: Mapped[str | None] = mapped_column(String(255))
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
