"""Client-side transport over server-sent events.

Messages from the server arrive as SSE events on a long-lived GET request;
messages to the server are POSTed to the endpoint announced by the first
``endpoint`` event.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import re
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Iterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlsplit

import aiohttp

logger = logging.getLogger(__name__)

MIME_TYPE = "text/event-stream"
HEADER_LAST_EVENT_ID = "Last-Event-ID"
QUEUE_SIZE = 16

_LINE_END = re.compile(rb"\r\n|\r|\n")


@dataclass(frozen=True)
class SseEvent:
    """One dispatched server-sent event."""

    event: str | None = None
    data: str | None = None
    id: str | None = None
    retry: int | None = None


class SseParser:
    """Incremental parser for the ``text/event-stream`` format."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._first_line = True
        self._reset()

    def _reset(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None
        self._retry: int | None = None
        self._has_fields = False

    def _lines(self, final: bool) -> Iterator[str]:
        while True:
            match = _LINE_END.search(self._buffer)
            if match is None:
                return
            # A trailing CR may be the first half of a CRLF split across chunks.
            if match.group() == b"\r" and match.end() == len(self._buffer) and not final:
                return
            line = bytes(self._buffer[: match.start()])
            del self._buffer[: match.end()]
            text = line.decode("utf-8", errors="replace")
            if self._first_line:
                self._first_line = False
                text = text.removeprefix("\ufeff")
            yield text

    def _dispatch(self) -> SseEvent | None:
        if not self._has_fields:
            return None
        event = SseEvent(
            event=self._event,
            data="\n".join(self._data) if self._data else None,
            id=self._id,
            retry=self._retry,
        )
        self._reset()
        return event

    def _process_line(self, line: str) -> SseEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, sep, value = line.partition(":")
        if sep:
            value = value.removeprefix(" ")
        match field:
            case "event":
                self._event = value
                self._has_fields = True
            case "data":
                self._data.append(value)
                self._has_fields = True
            case "id":
                if "\0" not in value:
                    self._id = value
                    self._has_fields = True
            case "retry":
                if value.isascii() and value.isdigit():
                    self._retry = int(value)
                    self._has_fields = True
        return None

    def _drain(self, final: bool) -> list[SseEvent]:
        events = []
        for line in self._lines(final):
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def feed(self, chunk: bytes) -> list[SseEvent]:
        """Add bytes and return the events completed by them."""
        self._buffer.extend(chunk)
        return self._drain(final=False)

    def finish(self) -> list[SseEvent]:
        """End the input; an event without its closing blank line is dropped."""
        events = self._drain(final=True)
        self._buffer.clear()
        self._reset()
        return events


async def parse_sse(chunks: AsyncIterable[bytes]) -> AsyncIterator[SseEvent]:
    """Yield the events found in an asynchronous stream of byte chunks."""
    parser = SseParser()
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
    for event in parser.finish():
        yield event


class SseTransportError(Exception):
    """The SSE transport failed."""


class UnexpectedEndOfStream(SseTransportError):
    """The event stream ended before the endpoint was announced."""

    def __init__(self) -> None:
        super().__init__("unexpected end of stream")


class UnexpectedContentType(SseTransportError):
    """The server answered with something other than an event stream."""

    def __init__(self, content_type: str | None) -> None:
        super().__init__(f"Unexpected content type: {content_type!r}")
        self.content_type = content_type


@dataclass(frozen=True)
class RetryConfig:
    """How to reconnect a broken event stream.

    ``max_times`` of ``None`` retries forever; ``min_duration`` is in seconds.
    """

    max_times: int | None = None
    min_duration: float = 1.0


class SseClient(abc.ABC):
    """Opens event streams and posts messages for an :class:`SseTransport`."""

    @abc.abstractmethod
    async def connect(self, last_event_id: str | None = None) -> AsyncIterator[SseEvent]:
        """Open the event stream, resuming after ``last_event_id`` if given."""

    @abc.abstractmethod
    async def post(self, endpoint: str, message: Any) -> None:
        """Send ``message`` to the server's message endpoint."""


class AiohttpSseClient(SseClient):
    """An :class:`SseClient` built on an aiohttp session."""

    def __init__(
        self,
        url: str,
        session: aiohttp.ClientSession | None = None,
        timeout: float | None = None,
    ) -> None:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise SseTransportError(f"Url error: invalid url {url!r}")
        self.url = url
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def connect(self, last_event_id: str | None = None) -> AsyncIterator[SseEvent]:
        headers = {"Accept": MIME_TYPE}
        if last_event_id is not None:
            headers[HEADER_LAST_EVENT_ID] = last_event_id
        try:
            response = await self._get_session().get(self.url, headers=headers)
        except aiohttp.ClientError as exc:
            raise SseTransportError(f"Transport error: {exc}") from exc
        if response.status >= 400:
            response.release()
            raise SseTransportError(f"Transport error: HTTP status {response.status}")
        content_type = response.headers.get("Content-Type")
        if content_type is None or not content_type.startswith(MIME_TYPE):
            response.release()
            raise UnexpectedContentType(content_type)
        return self._events(response)

    @staticmethod
    async def _events(response: aiohttp.ClientResponse) -> AsyncIterator[SseEvent]:
        parser = SseParser()
        try:
            async for chunk in response.content.iter_any():
                for event in parser.feed(chunk):
                    yield event
            for event in parser.finish():
                yield event
        except aiohttp.ClientError as exc:
            raise SseTransportError(f"SSE error: {exc}") from exc
        finally:
            response.release()

    async def post(self, endpoint: str, message: Any) -> None:
        uri = urljoin(self.url, endpoint)
        try:
            async with self._get_session().post(uri, json=message) as response:
                response.raise_for_status()
        except aiohttp.ClientError as exc:
            raise SseTransportError(f"Transport error: {exc}") from exc

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None


class SseTransport:
    """A message transport that reads server events and posts client messages.

    Use :meth:`start` for a URL or :meth:`start_with_client` for a custom client.
    """

    def __init__(
        self,
        client: SseClient,
        events: AsyncIterator[SseEvent],
        session_id: str,
        last_event_id: str | None,
        retry_ms: int | None,
        retry_config: RetryConfig,
    ) -> None:
        self._client = client
        self._events: AsyncIterator[SseEvent] | None = events
        self.session_id = session_id
        self.last_event_id = last_event_id
        self.recommended_retry_ms = retry_ms
        self.retry_config = retry_config
        self._fatal_reason: str | None = None
        self._requests: deque[asyncio.Task[None]] = deque()
        self._owns_client = False

    @classmethod
    async def start(cls, url: str) -> SseTransport:
        """Connect to ``url`` with an aiohttp-based client."""
        client = AiohttpSseClient(url)
        try:
            transport = await cls.start_with_client(client)
        except BaseException:
            await client.close()
            raise
        transport._owns_client = True
        return transport

    @classmethod
    async def start_with_client(
        cls, client: SseClient, retry_config: RetryConfig | None = None
    ) -> SseTransport:
        """Open the stream and wait for the server to announce its endpoint."""
        events = await client.connect(None)
        last_event_id = None
        retry_ms = None
        while True:
            try:
                event = await anext(events)
            except StopAsyncIteration:
                raise UnexpectedEndOfStream() from None
            if event.id is not None:
                last_event_id = event.id
            if event.retry is not None:
                retry_ms = event.retry
            if event.event == "endpoint":
                session_id = event.data or ""
                break
        return cls(
            client,
            events,
            session_id,
            last_event_id,
            retry_ms,
            retry_config or RetryConfig(),
        )

    def _retry_delay(self) -> float:
        delay = self.retry_config.min_duration
        if self.recommended_retry_ms is not None:
            delay = max(delay, self.recommended_retry_ms / 1000)
        return delay

    async def _reconnect(self) -> None:
        times = 1
        while True:
            await asyncio.sleep(self._retry_delay())
            try:
                self._events = await self._client.connect(self.last_event_id)
                return
            except (SseTransportError, OSError) as exc:
                logger.warning("retrying failed: %s", exc)
                max_times = self.retry_config.max_times
                if max_times is not None and times >= max_times:
                    self._fatal_reason = f"retrying failed after {times} times: {exc}"
                    return
                times += 1

    async def receive(self) -> Any:
        """Return the next server message, or ``None`` when the stream is over."""
        while True:
            if self._fatal_reason is not None:
                logger.error("sse transport fatal error: %s", self._fatal_reason)
                return None
            if self._events is None:
                await self._reconnect()
                continue
            try:
                event = await anext(self._events)
            except StopAsyncIteration:
                return None
            except (SseTransportError, OSError) as exc:
                logger.error("sse event stream encounter an error: %s", exc)
                self._events = None
                await self._reconnect()
                continue
            if event.retry is not None:
                self.recommended_retry_ms = event.retry
            if event.id is not None:
                self.last_event_id = event.id
            if event.data is None:
                continue
            try:
                return json.loads(event.data)
            except ValueError as exc:
                logger.error("failed to parse json rpc request: %s", exc)

    async def __aiter__(self) -> AsyncIterator[Any]:
        while (message := await self.receive()) is not None:
            yield message

    async def send(self, message: Any) -> None:
        """Queue ``message`` for posting; waits if too many posts are pending."""
        if len(self._requests) >= QUEUE_SIZE:
            await self._requests.popleft()
        self._requests.append(
            asyncio.create_task(self._client.post(self.session_id, message))
        )

    async def flush(self) -> None:
        """Wait for every pending post, raising the first failure."""
        while self._requests:
            await self._requests[0]
            self._requests.popleft()

    async def close(self) -> None:
        try:
            await self.flush()
        finally:
            events, self._events = self._events, None
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
            if self._owns_client and isinstance(self._client, AiohttpSseClient):
                await self._client.close()

    async def __aenter__(self) -> SseTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()