"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from telephony.events import CallEvent, CallEventKind

_EVENT_KINDS: dict[str, CallEventKind] = {
    "new-call": CallEventKind.NEW_CALL,
    "dtmf": CallEventKind.DTMF,
    "call-end": CallEventKind.CALL_END,
}


class CallEventPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event: Literal["new-call", "dtmf", "call-end"]
    call_id: str = Field(min_length=1)
    from_: str | None = Field(default=None, alias="from")
    caller: str | None = None
    msisdn: str | None = None
    hospital_id: str | None = None
    digit: str | None = None

    def to_event(self) -> CallEvent:
        return CallEvent(
            kind=_EVENT_KINDS[self.event],
            call_id=self.call_id,
            caller_identity=self.from_ or self.caller or self.msisdn,
            hospital_context=self.hospital_id,
            digit=self.digit,
        )


class CallEventAccepted(BaseModel):
    call_id: str
    status: str = "accepted"


class CallSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    call_id: str | None
    hospital_id: str
    caller_phone: str
    status: str
    ai_summary: str | None
    inbound_recording: str | None
    outbound_recording: str | None
    started_at: datetime
    ended_at: datetime | None
