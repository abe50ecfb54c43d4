from __future__ import annotations

import asyncio

import pytest

from config.settings import Settings
from telephony.ari_controller import AriController
from telephony.dispatcher import CallDispatcher, build_event_source
from telephony.errors import ControlPlaneError
from telephony.events import CallEvent, CallEventKind, CallEventSource, CallInfo
from telephony.registry import BridgeRegistry
from telephony.webhook_source import WebhookEventSource


class FakeSource(CallEventSource):
    def __init__(self, events: list[CallEvent], *, fail_prepare: bool = False) -> None:
        self._events = events
        self._fail_prepare = fail_prepare
        self.prepared: list[str] = []
        self.released: list[str] = []

    async def subscribe(self):
        for event in self._events:
            yield event

    async def prepare_media(self, event: CallEvent) -> None:
        if self._fail_prepare:
            raise ControlPlaneError("answer failed")
        self.prepared.append(event.call_id)

    async def release_media(self, event: CallEvent) -> None:
        self.released.append(event.call_id)


class StubBridge:
    def __init__(self) -> None:
        self.close_reasons: list[str] = []

    def request_close(self, reason: str) -> None:
        self.close_reasons.append(reason)


def test_new_call_registers_metadata_and_prepares_media():
    source = FakeSource(
        [
            CallEvent(
                kind=CallEventKind.NEW_CALL,
                call_id="c1",
                caller_identity="+2348000000001",
                hospital_context="st-mary",
            )
        ]
    )
    registry = BridgeRegistry()

    asyncio.run(CallDispatcher(source, registry).run_forever())

    assert source.prepared == ["c1"]
    assert registry.claim("c1") == CallInfo(
        call_id="c1", caller_identity="+2348000000001", hospital_context="st-mary"
    )


def test_failed_media_setup_forgets_the_call():
    source = FakeSource([CallEvent(kind=CallEventKind.NEW_CALL, call_id="c1")], fail_prepare=True)
    registry = BridgeRegistry()

    asyncio.run(CallDispatcher(source, registry).run_forever())

    assert registry.pending_count == 0


def test_call_end_closes_live_bridge_and_releases_media():
    source = FakeSource(
        [
            CallEvent(kind=CallEventKind.DTMF, call_id="c1", digit="1"),
            CallEvent(kind=CallEventKind.CALL_END, call_id="c1"),
        ]
    )
    registry = BridgeRegistry()
    bridge = StubBridge()
    registry.register("c1", bridge)

    asyncio.run(CallDispatcher(source, registry).run_forever())

    assert bridge.close_reasons == ["call ended by control plane"]
    assert source.released == ["c1"]


def test_handler_crash_does_not_stop_the_loop():
    class ExplodingRegistry(BridgeRegistry):
        def expect_call(self, call: CallInfo) -> None:
            raise KeyError(call.call_id)

    source = FakeSource(
        [
            CallEvent(kind=CallEventKind.NEW_CALL, call_id="c1"),
            CallEvent(kind=CallEventKind.CALL_END, call_id="c2"),
        ]
    )

    asyncio.run(CallDispatcher(source, ExplodingRegistry()).run_forever())

    assert source.released == ["c2"]


def test_registry_claim_defaults_for_unannounced_calls():
    registry = BridgeRegistry(default_hospital_context="general")

    call = registry.claim("c9")

    assert call == CallInfo(call_id="c9", caller_identity="unknown", hospital_context="general")


def test_registry_replacing_bridge_closes_previous():
    registry = BridgeRegistry()
    old, new = StubBridge(), StubBridge()
    registry.register("c1", old)
    registry.register("c1", new)
    registry.unregister("c1", old)

    assert old.close_reasons == ["replaced by new media stream"]
    assert registry.get("c1") is new
    assert registry.active_count == 1


def test_registry_end_call_without_bridge_drops_pending():
    registry = BridgeRegistry()
    registry.expect_call(CallInfo(call_id="c1", caller_identity="x"))

    assert registry.end_call("c1") is False
    assert registry.pending_count == 0


def test_webhook_source_yields_published_events():
    source = WebhookEventSource()
    event = CallEvent(kind=CallEventKind.NEW_CALL, call_id="c1")

    async def scenario() -> CallEvent:
        assert source.publish(event) is True
        events = source.subscribe()
        try:
            return await anext(events)
        finally:
            await events.aclose()

    assert asyncio.run(scenario()) == event


def test_webhook_source_rejects_when_full():
    source = WebhookEventSource(max_queued=1)
    event = CallEvent(kind=CallEventKind.NEW_CALL, call_id="c1")

    assert source.publish(event) is True
    assert source.publish(event) is False


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({"control_plane": "webhook"}, WebhookEventSource),
        (
            {"control_plane": "ari", "asterisk_ari_username": "u", "asterisk_ari_password": "p"},
            AriController,
        ),
    ],
)
def test_build_event_source_follows_configuration(overrides, expected):
    settings = Settings(_env_file=None, speech_endpoint_url="ws://speech.test", **overrides)

    source = build_event_source(settings)
    try:
        assert isinstance(source, expected)
    finally:
        asyncio.run(source.aclose())


def test_registry_expires_calls_whose_stream_never_arrives():
    now = [1000.0]
    registry = BridgeRegistry(pending_ttl=30.0, clock=lambda: now[0])
    registry.expect_call(CallInfo(call_id="lost", caller_identity="+2348000000001"))

    now[0] += 10.0
    registry.expect_call(CallInfo(call_id="fresh", caller_identity="+2348000000002"))
    assert registry.pending_count == 2

    now[0] += 25.0
    assert registry.pending_count == 1
    assert registry.claim("lost").caller_identity == "unknown"
    assert registry.claim("fresh").caller_identity == "+2348000000002"
