"""HTTP and websocket surface for operators watching the session."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
import weakref
from pathlib import Path
from typing import Any

import msgspec
from aiohttp import WSCloseCode, WSMsgType, web

from ..const import EVENT_GET_QR
from ..metrics import METRICS_CONTENT_TYPE, MetricsRenderer
from ..services.broadcast import BroadcastHub, ObserverChannel
from ..state.context import RuntimeState

logger = logging.getLogger("chatbridge.web")

STATIC_DIR = Path(__file__).resolve().parent / "static"
WS_HEARTBEAT_SECONDS = 30.0

_SOCKETS_KEY: web.AppKey[weakref.WeakSet[web.WebSocketResponse]] = web.AppKey(
    "observer_sockets", weakref.WeakSet
)


class ObserverRequest(msgspec.Struct):
    """Client-to-server frame on the observer channel."""

    event: str
    data: Any = None


_REQUEST_DECODER = msgspec.json.Decoder(ObserverRequest)


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    req_id = uuid.uuid4().hex[:8]
    start = time.monotonic()
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        logger.info(
            "HTTP %s %s req=%s status=%s",
            request.method,
            request.path_qs,
            req_id,
            exc.status,
        )
        raise
    except Exception:
        logger.exception("HTTP %s %s req=%s failed", request.method, request.path_qs, req_id)
        raise
    logger.debug(
        "HTTP %s %s req=%s status=%s duration_ms=%.1f",
        request.method,
        request.path_qs,
        req_id,
        response.status,
        (time.monotonic() - start) * 1000,
    )
    return response


class ObserverServer:
    """aiohttp application serving the operator page, status and observers."""

    def __init__(
        self,
        state: RuntimeState,
        hub: BroadcastHub,
        *,
        host: str,
        port: int,
        metrics_enabled: bool = True,
    ) -> None:
        self.state = state
        self.hub = hub
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._resolved_port: int | None = None
        self._metrics = MetricsRenderer(state) if metrics_enabled else None
        self.app = self._build_app()

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    def _build_app(self) -> web.Application:
        app = web.Application(middlewares=[request_logging_middleware])
        app[_SOCKETS_KEY] = weakref.WeakSet()
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/status", self._handle_status)
        app.router.add_get("/ws", self._handle_observer)
        if self._metrics is not None:
            app.router.add_get("/metrics", self._handle_metrics)
        app.on_shutdown.append(self._close_observers)
        return app

    # Lifecycle

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(self.app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        await site.start()
        self._runner = runner

        addresses = runner.addresses
        if addresses and isinstance(addresses[0], tuple) and len(addresses[0]) >= 2:
            self._resolved_port = int(addresses[0][1])
        logger.info("Server running", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is None:
            return
        await runner.cleanup()
        logger.info("Server stopped")

    async def run(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    # Handlers

    async def _handle_index(self, request: web.Request) -> web.StreamResponse:
        return web.FileResponse(STATIC_DIR / "index.html")

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.state.session.snapshot.status_payload())

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        assert self._metrics is not None
        return web.Response(body=self._metrics.render(), headers={"Content-Type": METRICS_CONTENT_TYPE})

    async def _handle_observer(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT_SECONDS)
        await ws.prepare(request)
        request.app[_SOCKETS_KEY].add(ws)

        channel = self.hub.open_channel()
        writer = asyncio.create_task(self._pump(channel, ws), name=f"observer-{channel.id}")
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._handle_request(channel, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("Observer %s connection error: %s", channel.id, ws.exception())
        finally:
            self.hub.on_observer_disconnected(channel)
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)
        return ws

    def _handle_request(self, channel: ObserverChannel, raw: str) -> None:
        try:
            request = _REQUEST_DECODER.decode(raw)
        except msgspec.DecodeError:
            logger.debug("Ignoring unparseable observer frame from %s", channel.id)
            return
        if request.event == EVENT_GET_QR:
            self.hub.request_sync(channel)
        else:
            logger.debug("Ignoring observer event %r from %s", request.event, channel.id)

    async def _pump(self, channel: ObserverChannel, ws: web.WebSocketResponse) -> None:
        while True:
            event = await channel.next_event()
            if event is None:
                break
            try:
                await ws.send_str(event.encode().decode("utf-8"))
            except (ConnectionResetError, RuntimeError) as exc:
                logger.debug("Observer %s went away while sending: %s", channel.id, exc)
                break
        if not ws.closed:
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"observer closed")

    async def _close_observers(self, app: web.Application) -> None:
        for ws in set(app[_SOCKETS_KEY]):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"server shutdown")


__all__ = ["ObserverRequest", "ObserverServer", "STATIC_DIR", "request_logging_middleware"]
