"""Server side of the server-sent-events transport.

Each GET on the SSE path opens a session: the server announces a message
endpoint carrying the session id, then streams messages to the client as
``message`` events. The client POSTs its messages to that endpoint.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import secrets
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from aiohttp import web

logger = logging.getLogger(__name__)

DEFAULT_AUTO_PING_INTERVAL = 15.0
CHANNEL_CAPACITY = 64
MIME_TYPE = "text/event-stream"

_CLOSED = object()


def new_session_id() -> str:
    """Return a fresh random session id in hexadecimal."""
    return f"{secrets.randbits(128):016x}"


@dataclass
class SseServerConfig:
    """Where the server listens and which paths it serves.

    ``sse_keep_alive`` is the ping interval in seconds; ``None`` uses the
    default. Setting ``cancel_event`` stops the server.
    """

    host: str
    port: int
    sse_path: str = "/sse"
    post_path: str = "/message"
    sse_keep_alive: float | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)


def _format_event(event: str, data: str) -> bytes:
    lines = "".join(f"data: {line}\n" for line in data.split("\n"))
    return f"event: {event}\n{lines}\n".encode("utf-8")


class SseServerTransport:
    """The server's end of one SSE session."""

    def __init__(self, session_id: str, store: dict[str, SseServerTransport]) -> None:
        self.session_id = session_id
        self._store = store
        self._incoming: asyncio.Queue[Any] = asyncio.Queue(CHANNEL_CAPACITY)
        self._outgoing: asyncio.Queue[Any] = asyncio.Queue(CHANNEL_CAPACITY)
        self._closed = False
        self._stream_gone = False

    async def _deliver(self, message: Any) -> bool:
        if self._closed:
            return False
        await self._incoming.put(message)
        return True

    async def send(self, message: Any) -> None:
        """Queue ``message`` for the client's event stream."""
        if self._closed or self._stream_gone:
            raise OSError("event stream for this session is closed")
        await self._outgoing.put(message)

    async def receive(self) -> Any:
        """Return the next client message, or ``None`` once the session is closed."""
        if self._closed and self._incoming.empty():
            return None
        item = await self._incoming.get()
        return None if item is _CLOSED else item

    async def __aiter__(self) -> AsyncIterator[Any]:
        while (message := await self.receive()) is not None:
            yield message

    def _shut(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._store.get(self.session_id) is self:
            del self._store[self.session_id]
        for queue in (self._incoming, self._outgoing):
            with contextlib.suppress(asyncio.QueueFull):
                queue.put_nowait(_CLOSED)

    async def close(self) -> None:
        """End the session; messages already queued are still delivered."""
        self._shut()

    async def __aenter__(self) -> SseServerTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class _App:
    def __init__(self, post_path: str, ping_interval: float, cancel_event: asyncio.Event) -> None:
        self.store: dict[str, SseServerTransport] = {}
        self.transports: asyncio.Queue[SseServerTransport] = asyncio.Queue()
        self.post_path = post_path
        self.ping_interval = ping_interval
        self.cancel_event = cancel_event

    async def handle_post(self, request: web.Request) -> web.Response:
        session_id = request.query.get("sessionId")
        if session_id is None:
            return web.Response(status=400, text="missing sessionId")
        try:
            message = await request.json()
        except ValueError:
            return web.Response(status=400, text="invalid json body")
        logger.debug("new client message for session %s: %r", session_id, message)
        transport = self.store.get(session_id)
        if transport is None:
            return web.Response(status=404)
        if not await transport._deliver(message):
            logger.error("send message error")
            return web.Response(status=410)
        return web.Response(status=202)

    async def handle_sse(self, request: web.Request) -> web.StreamResponse:
        if self.cancel_event.is_set():
            logger.warning("send transport out error")
            return web.Response(
                status=500,
                text="fail to send out transport, it seems server is closed",
            )
        session = new_session_id()
        logger.info("sse connection %s", session)
        transport = SseServerTransport(session, self.store)
        self.store[session] = transport
        self.transports.put_nowait(transport)

        response = web.StreamResponse(headers={"Cache-Control": "no-cache"})
        response.content_type = MIME_TYPE
        try:
            await response.prepare(request)
            await response.write(
                _format_event("endpoint", f"{self.post_path}?sessionId={session}")
            )
            await self._pump(transport, response)
        except ConnectionError as exc:
            logger.debug("sse client %s disconnected: %s", session, exc)
        finally:
            transport._stream_gone = True
        return response

    async def _pump(self, transport: SseServerTransport, response: web.StreamResponse) -> None:
        outgoing = transport._outgoing
        while not (transport._closed and outgoing.empty()):
            try:
                item = await asyncio.wait_for(outgoing.get(), self.ping_interval)
            except TimeoutError:
                await response.write(b":\n\n")
                continue
            if item is _CLOSED:
                break
            try:
                data = json.dumps(item, separators=(",", ":"), ensure_ascii=False)
            except (TypeError, ValueError) as exc:
                logger.error("failed to serialise message: %s", exc)
                break
            await response.write(_format_event("message", data))


Handler = Callable[[SseServerTransport], Awaitable[Any]]


class SseServer:
    """Accepts SSE sessions and hands out a transport for each."""

    def __init__(self, config: SseServerConfig, state: _App) -> None:
        self.config = config
        self._state = state
        self._runner: web.AppRunner | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @classmethod
    def create(cls, config: SseServerConfig) -> tuple[SseServer, web.Application]:
        """Build the server and the web application that serves it, unstarted."""
        ping = config.sse_keep_alive
        state = _App(
            config.post_path,
            DEFAULT_AUTO_PING_INTERVAL if ping is None else ping,
            config.cancel_event,
        )
        app = web.Application()
        app.router.add_get(config.sse_path, state.handle_sse)
        app.router.add_post(config.post_path, state.handle_post)
        return cls(config, state), app

    @classmethod
    async def serve(cls, host: str, port: int) -> SseServer:
        """Listen on ``host``:``port`` with the default paths."""
        return await cls.serve_with_config(SseServerConfig(host, port))

    @classmethod
    async def serve_with_config(cls, config: SseServerConfig) -> SseServer:
        """Listen as ``config`` says until the server is cancelled."""
        server, app = cls.create(config)
        runner = web.AppRunner(app)
        await runner.setup()
        try:
            site = web.TCPSite(runner, config.host, config.port)
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        server._runner = runner
        server._spawn(server._shutdown_on_cancel())
        return server

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _shutdown_on_cancel(self) -> None:
        await self.config.cancel_event.wait()
        logger.info("sse server cancelled")
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def next_transport(self) -> SseServerTransport | None:
        """Wait for the next session, or return ``None`` once cancelled."""
        cancel = self.config.cancel_event
        if cancel.is_set():
            return None
        get = asyncio.ensure_future(self._state.transports.get())
        stop = asyncio.ensure_future(cancel.wait())
        done, pending = await asyncio.wait({get, stop}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if get in done:
            return get.result()
        return None

    async def _run_handler(self, handler: Handler, transport: SseServerTransport) -> None:
        try:
            await handler(transport)
        except Exception:
            logger.exception("session %s handler failed", transport.session_id)
        finally:
            await transport.close()

    def with_handler(self, handler: Handler) -> asyncio.Event:
        """Run ``handler`` on every new session; returns the cancel event."""

        async def accept() -> None:
            while (transport := await self.next_transport()) is not None:
                self._spawn(self._run_handler(handler, transport))

        self._spawn(accept())
        return self.config.cancel_event

    def cancel(self) -> None:
        """Stop accepting sessions and close the open ones."""
        self.config.cancel_event.set()
        for transport in list(self._state.store.values()):
            transport._shut()

    async def __aiter__(self) -> AsyncIterator[SseServerTransport]:
        while (transport := await self.next_transport()) is not None:
            yield transport