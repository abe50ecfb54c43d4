from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from telephony.events import CallInfo

if TYPE_CHECKING:  # pragma: no cover
    from telephony.media_bridge import MediaBridge

LOGGER = logging.getLogger(__name__)


class BridgeRegistry:
    """Maps call ids to pending call metadata and to live bridges.

    The control plane only writes pending metadata and asks for calls to end; each
    bridge owns its own session and connections.
    """

    def __init__(
        self,
        *,
        default_hospital_context: str = "default",
        pending_ttl: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_hospital_context = default_hospital_context
        self._pending_ttl = pending_ttl
        self._clock = clock
        self._pending: dict[str, tuple[float, CallInfo]] = {}
        self._bridges: dict[str, MediaBridge] = {}

    @property
    def active_count(self) -> int:
        return len(self._bridges)

    @property
    def pending_count(self) -> int:
        self._expire_pending()
        return len(self._pending)

    def expect_call(self, call: CallInfo) -> None:
        self._expire_pending()
        self._pending[call.call_id] = (self._clock(), call)

    def forget(self, call_id: str) -> None:
        self._pending.pop(call_id, None)

    def claim(self, call_id: str) -> CallInfo:
        self._expire_pending()
        entry = self._pending.pop(call_id, None)
        if entry is None:
            LOGGER.info("Media stream for unannounced call %s", call_id)
            return CallInfo(
                call_id=call_id,
                caller_identity="unknown",
                hospital_context=self._default_hospital_context,
            )
        return entry[1]

    def get(self, call_id: str) -> MediaBridge | None:
        return self._bridges.get(call_id)

    def register(self, call_id: str, bridge: MediaBridge) -> None:
        previous = self._bridges.get(call_id)
        if previous is not None and previous is not bridge:
            LOGGER.warning("Replacing bridge for call %s", call_id)
            previous.request_close("replaced by new media stream")
        self._bridges[call_id] = bridge

    def unregister(self, call_id: str, bridge: MediaBridge) -> None:
        if self._bridges.get(call_id) is bridge:
            del self._bridges[call_id]

    def end_call(self, call_id: str) -> bool:
        """Signal the call's bridge to close; returns whether one was live."""

        self._pending.pop(call_id, None)
        bridge = self._bridges.get(call_id)
        if bridge is None:
            return False
        bridge.request_close("call ended by control plane")
        return True

    def _expire_pending(self) -> None:
        # A lost StasisEnd would otherwise pin the entry forever.
        cutoff = self._clock() - self._pending_ttl
        expired = [call_id for call_id, (since, _) in self._pending.items() if since < cutoff]
        for call_id in expired:
            del self._pending[call_id]
            LOGGER.warning("Call %s never opened a media stream; forgetting it", call_id)
