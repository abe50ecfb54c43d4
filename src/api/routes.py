"""FastAPI routes for call events and session records."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import RelayServices, get_repository, get_services
from api.schemas import CallEventAccepted, CallEventPayload, CallSessionResponse
from db.repository import CallSessionRepository
from telephony.errors import StorageError
from telephony.webhook_source import WebhookEventSource

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/calls/events",
    response_model=CallEventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def publish_call_event(
    payload: CallEventPayload,
    services: RelayServices = Depends(get_services),
) -> CallEventAccepted:
    source = services.source
    if not isinstance(source, WebhookEventSource):
        raise HTTPException(status_code=404, detail="Webhook call events disabled")

    LOGGER.info("Webhook %s for call %s", payload.event, payload.call_id)
    if not source.publish(payload.to_event()):
        raise HTTPException(status_code=503, detail="Call event queue full")
    return CallEventAccepted(call_id=payload.call_id)


@router.get("/sessions/{session_id}", response_model=CallSessionResponse)
async def get_call_session(
    session_id: str,
    repo: CallSessionRepository = Depends(get_repository),
) -> CallSessionResponse:
    try:
        record = await repo.get_session(session_id)
    except StorageError as exc:
        LOGGER.exception("Session lookup failed: %s", exc.detail)
        raise HTTPException(status_code=503, detail=exc.detail) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return CallSessionResponse.model_validate(record)
