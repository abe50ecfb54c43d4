"""Entry point for the hospital call audio relay service."""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from pydantic import ValidationError

from api.dependencies import RelayServices
from api.media_routes import router as media_router
from api.routes import router as api_router
from config.settings import Settings, get_settings
from db.base import dispose_db, init_db
from db.repository import CallSessionRepository
from integrations.blob_store import build_blob_store
from integrations.speech_endpoint import SpeechEndpointClient
from telephony.dispatcher import CallDispatcher, build_event_source
from telephony.recording import RecordingSink, raw_audio_mime
from telephony.registry import BridgeRegistry
from telephony.session import SessionStore

LOGGER = logging.getLogger(__name__)


def build_services(settings: Settings) -> RelayServices:
    return RelayServices(
        settings=settings,
        sessions=SessionStore(default_hospital_context=settings.default_hospital_context),
        registry=BridgeRegistry(
            default_hospital_context=settings.default_hospital_context,
            pending_ttl=settings.call_pending_ttl_seconds,
        ),
        sink=RecordingSink(
            build_blob_store(settings),
            content_type=raw_audio_mime(
                settings.media_sample_rate, settings.media_sample_width, settings.media_channels
            ),
        ),
        records=CallSessionRepository(),
        source=build_event_source(settings),
        speech_factory=functools.partial(SpeechEndpointClient.from_settings, settings),
    )


def log_control_plane_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.critical("Control plane stopped; no further call events", exc_info=exc)
    else:
        LOGGER.error("Control plane event stream ended; no further call events")


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(app.state.settings)
    app.state.services = services
    await init_db()

    dispatcher = CallDispatcher(services.source, services.registry)
    task = asyncio.create_task(dispatcher.run_forever(), name="control-plane")
    task.add_done_callback(log_control_plane_exit)
    LOGGER.info("Control plane %s started", services.settings.control_plane)
    try:
        yield
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        await services.source.aclose()
        await dispose_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Hospital Call Audio Relay",
        description="Bridges call-control media streams with a streaming speech endpoint.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.include_router(media_router)
    app.include_router(api_router, prefix="/api")
    return app


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.critical("Invalid configuration:\n%s", exc)
        sys.exit(1)

    uvicorn.run(
        create_app(settings),
        host=settings.media_server_host,
        port=settings.media_server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
