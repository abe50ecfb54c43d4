"""Inbound media stream endpoint and liveness probe."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket
from fastapi.responses import PlainTextResponse

from api.dependencies import RelayServices
from telephony.media_bridge import MediaBridge

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> str:
    return "ok"


@router.websocket("/stream")
async def media_stream(websocket: WebSocket) -> None:
    services: RelayServices = websocket.app.state.services
    await websocket.accept()

    call_id = websocket.query_params.get("call_id") or websocket.query_params.get("callSid")
    if not call_id:
        LOGGER.warning("Media stream without call_id rejected")
        await websocket.close(code=1008)
        return

    bridge = MediaBridge(
        services.registry.claim(call_id),
        sessions=services.sessions,
        sink=services.sink,
        speech_factory=services.speech_factory,
        records=services.records,
    )
    services.registry.register(call_id, bridge)
    try:
        await bridge.run(websocket)
    finally:
        services.registry.unregister(call_id, bridge)
