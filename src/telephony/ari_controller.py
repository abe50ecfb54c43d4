from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
import websockets

from config.settings import Settings
from telephony.errors import ControlPlaneError
from telephony.events import CallEvent, CallEventKind, CallEventSource

LOGGER = logging.getLogger(__name__)

MEDIA_CHANNEL_PREFIX = "media-"
BRIDGE_PREFIX = "bridge-"


@dataclass(slots=True)
class AriAuth:
    username: str
    password: str


class AriController(CallEventSource):
    """Asterisk ARI control plane.

    Listens on the ARI events WebSocket of a Stasis app and, for every new call,
    answers it and routes its audio through an ExternalMedia WebSocket channel to
    the relay's ``/stream`` endpoint. The events connection is re-established
    after a fixed delay whenever it fails or drops, with no attempt limit.
    Calls already bridged keep running while the connection is down.
    """

    def __init__(
        self,
        base_url: str,
        auth: AriAuth,
        *,
        app: str,
        media_connection: str,
        media_format: str = "slin",
        reconnect_delay: float = 5.0,
        http: httpx.AsyncClient | None = None,
        connect: Callable[..., Awaitable[Any]] = websockets.connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._app = app
        self._media_connection = media_connection
        self._media_format = media_format
        self._reconnect_delay = reconnect_delay
        self._http = http or httpx.AsyncClient(auth=(auth.username, auth.password), timeout=10.0)
        self._connect = connect
        self._sleep = sleep
        self.connect_attempts = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> AriController:
        if not settings.asterisk_ari_username or not settings.asterisk_ari_password:
            raise RuntimeError("ASTERISK_ARI_USERNAME/PASSWORD not configured")
        return cls(
            settings.asterisk_ari_url,
            AriAuth(settings.asterisk_ari_username, settings.asterisk_ari_password),
            app=settings.asterisk_stasis_app,
            media_connection=settings.asterisk_media_connection,
            media_format=settings.asterisk_media_format,
            reconnect_delay=settings.control_plane_reconnect_delay_seconds,
        )

    async def subscribe(self) -> AsyncIterator[CallEvent]:
        ws_url = self._events_ws_url()
        while True:
            self.connect_attempts += 1
            try:
                ws = await self._connect(ws_url, ping_interval=20, ping_timeout=20)
            except Exception:
                LOGGER.exception(
                    "Failed to connect to ARI websocket; retrying in %.1fs", self._reconnect_delay
                )
                await self._sleep(self._reconnect_delay)
                continue

            LOGGER.info("Connected to ARI events for app %s", self._app)
            try:
                async for message in ws:
                    event = self.parse_event(message)
                    if event is not None:
                        yield event
            except websockets.ConnectionClosed as exc:
                LOGGER.warning("ARI websocket closed: %s", exc)
            except Exception:
                LOGGER.exception("ARI event loop crashed; reconnecting")
            finally:
                await ws.close()

            LOGGER.info("ARI events disconnected; reconnecting in %.1fs", self._reconnect_delay)
            await self._sleep(self._reconnect_delay)

    @staticmethod
    def parse_event(message: str | bytes) -> CallEvent | None:
        try:
            event = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not isinstance(event, dict):
            return None

        channel = event.get("channel") or {}
        channel_id = str(channel.get("id") or "")
        if not channel_id or channel_id.startswith(MEDIA_CHANNEL_PREFIX):
            return None

        event_type = str(event.get("type") or "")
        if event_type == "StasisStart":
            caller = channel.get("caller") or {}
            args = event.get("args") or []
            return CallEvent(
                kind=CallEventKind.NEW_CALL,
                call_id=channel_id,
                caller_identity=str(caller.get("number") or channel.get("name") or "unknown"),
                hospital_context=str(args[0]) if args and args[0] else None,
            )
        if event_type == "ChannelDtmfReceived":
            return CallEvent(
                kind=CallEventKind.DTMF,
                call_id=channel_id,
                digit=str(event.get("digit") or ""),
            )
        if event_type == "StasisEnd":
            return CallEvent(kind=CallEventKind.CALL_END, call_id=channel_id)
        return None

    async def prepare_media(self, event: CallEvent) -> None:
        channel_id = event.call_id
        await self._request("POST", f"/channels/{channel_id}/answer")
        try:
            await self._request("DELETE", f"/channels/{channel_id}/moh")
        except ControlPlaneError as exc:
            LOGGER.debug("No hold music to stop on %s: %s", channel_id, exc.detail)

        bridge_id = f"{BRIDGE_PREFIX}{channel_id}"
        media_id = f"{MEDIA_CHANNEL_PREFIX}{channel_id}"
        await self._request("POST", f"/bridges/{bridge_id}", params={"type": "mixing"})
        await self._request(
            "POST",
            "/channels/externalMedia",
            params={
                "channelId": media_id,
                "app": self._app,
                "external_host": self._media_connection,
                "format": self._media_format,
                "transport": "websocket",
                "encapsulation": "none",
                "connection_type": "client",
                "transport_data": f"v(call_id={channel_id})",
            },
        )
        await self._request(
            "POST",
            f"/bridges/{bridge_id}/addChannel",
            params={"channel": ",".join([channel_id, media_id])},
        )
        LOGGER.info("Bridged channel=%s with externalMedia=%s (bridge=%s)", channel_id, media_id, bridge_id)

    async def release_media(self, event: CallEvent) -> None:
        for path in (
            f"/channels/{MEDIA_CHANNEL_PREFIX}{event.call_id}",
            f"/bridges/{BRIDGE_PREFIX}{event.call_id}",
        ):
            try:
                await self._request("DELETE", path)
            except ControlPlaneError as exc:
                LOGGER.debug("Cleanup %s skipped: %s", path, exc.detail)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self, method: str, path: str, *, params: dict[str, str] | None = None
    ) -> httpx.Response:
        try:
            resp = await self._http.request(method, f"{self._base_url}{path}", params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ControlPlaneError(f"ARI {method} {path} failed: {exc}") from exc
        return resp

    def _events_ws_url(self) -> str:
        # ARI events WS endpoint: /ari/events?app=<app>&api_key=<user>:<pass>
        base = self._base_url
        if base.startswith("https://"):
            scheme = "wss://"
            rest = base.removeprefix("https://")
        elif base.startswith("http://"):
            scheme = "ws://"
            rest = base.removeprefix("http://")
        else:
            scheme = "ws://"
            rest = base

        query = urlencode({"app": self._app, "api_key": f"{self._auth.username}:{self._auth.password}"})
        return f"{scheme}{rest}/events?{query}"
