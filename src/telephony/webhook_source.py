from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from telephony.events import CallEvent, CallEventSource

LOGGER = logging.getLogger(__name__)


class WebhookEventSource(CallEventSource):
    """Call events delivered by a provider's HTTP webhooks.

    The provider opens the media stream to ``/stream`` on its own, so there is
    no media to prepare or release here.
    """

    def __init__(self, *, max_queued: int = 1000) -> None:
        self._queue: asyncio.Queue[CallEvent] = asyncio.Queue(maxsize=max_queued)

    def publish(self, event: CallEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            LOGGER.error("Webhook event queue full; dropping %s for call %s", event.kind.value, event.call_id)
            return False
        return True

    async def subscribe(self) -> AsyncIterator[CallEvent]:
        while True:
            yield await self._queue.get()
