"""Control-plane loop: turns call events into bridge expectations and closes."""

from __future__ import annotations

import logging

from config.settings import Settings
from telephony.ari_controller import AriController
from telephony.errors import ControlPlaneError
from telephony.events import CallEvent, CallEventKind, CallEventSource, CallInfo
from telephony.registry import BridgeRegistry
from telephony.webhook_source import WebhookEventSource

LOGGER = logging.getLogger(__name__)


def build_event_source(settings: Settings) -> CallEventSource:
    """Instantiate the configured control-plane integration."""

    if settings.control_plane == "ari":
        return AriController.from_settings(settings)
    if settings.control_plane == "webhook":
        return WebhookEventSource()
    raise ValueError(f"Unsupported control_plane: {settings.control_plane}")


class CallDispatcher:
    def __init__(self, source: CallEventSource, registry: BridgeRegistry) -> None:
        self._source = source
        self._registry = registry

    async def run_forever(self) -> None:
        async for event in self._source.subscribe():
            try:
                await self.handle(event)
            except Exception:
                LOGGER.exception("Handling %s for call %s crashed", event.kind.value, event.call_id)

    async def handle(self, event: CallEvent) -> None:
        if event.kind is CallEventKind.NEW_CALL:
            LOGGER.info("New call %s from %s", event.call_id, event.caller_identity)
            self._registry.expect_call(
                CallInfo(
                    call_id=event.call_id,
                    caller_identity=event.caller_identity or "unknown",
                    hospital_context=event.hospital_context,
                )
            )
            try:
                await self._source.prepare_media(event)
            except ControlPlaneError as exc:
                LOGGER.error("Could not set up media for call %s: %s", event.call_id, exc.detail)
                self._registry.forget(event.call_id)
        elif event.kind is CallEventKind.CALL_END:
            bridged = self._registry.end_call(event.call_id)
            LOGGER.info("Call %s ended (bridged=%s)", event.call_id, bridged)
            await self._source.release_media(event)
        elif event.kind is CallEventKind.DTMF:
            LOGGER.info("Call %s DTMF digit=%s", event.call_id, event.digit)
