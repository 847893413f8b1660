"""Newline-delimited JSON framing for JSON-RPC messages over byte streams."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_READ_CHUNK = 8192


class CodecError(Exception):
    """A frame could not be decoded into a JSON value."""


class MaxLineLengthExceeded(CodecError):
    """A line grew past the codec's maximum length without a newline."""

    def __init__(self) -> None:
        super().__init__("max line length exceeded")


def _without_carriage_return(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\r") else line


def _parse(line: bytes) -> Any:
    try:
        return json.loads(line)
    except ValueError as exc:
        raise CodecError(f"serde error {exc}") from exc


class JsonRpcMessageCodec:
    """Splits a byte buffer into JSON values, one per line.

    ``decode`` consumes bytes from the front of a ``bytearray`` and returns
    ``None`` while no complete line is available.
    """

    def __init__(self, max_length: int | None = None) -> None:
        self.max_length = max_length
        self._next_index = 0
        self._is_discarding = False

    def _read_limit(self, buf: bytearray) -> int:
        if self.max_length is None:
            return len(buf)
        return min(self.max_length + 1, len(buf))

    def decode(self, buf: bytearray) -> Any:
        """Decode one line from ``buf``, or return ``None`` if none is complete."""
        while True:
            read_to = self._read_limit(buf)
            newline = buf.find(b"\n", self._next_index, read_to)

            if self._is_discarding:
                if newline != -1:
                    del buf[: newline + 1]
                    self._is_discarding = False
                    self._next_index = 0
                else:
                    del buf[:read_to]
                    self._next_index = 0
                    if not buf:
                        return None
                continue

            if newline != -1:
                self._next_index = 0
                line = bytes(buf[:newline])
                del buf[: newline + 1]
                return _parse(_without_carriage_return(line))

            if self.max_length is not None and len(buf) > self.max_length:
                self._is_discarding = True
                raise MaxLineLengthExceeded()

            self._next_index = read_to
            return None

    def decode_eof(self, buf: bytearray) -> Any:
        """Decode at end of input, accepting a final line without a newline."""
        item = self.decode(buf)
        if item is not None:
            return item
        self._next_index = 0
        if not buf or buf == b"\r":
            return None
        line = bytes(buf)
        buf.clear()
        return _parse(_without_carriage_return(line))

    def encode(self, item: Any) -> bytes:
        """Serialise ``item`` as compact JSON followed by a newline."""
        text = json.dumps(item, separators=(",", ":"), ensure_ascii=False)
        return text.encode("utf-8") + b"\n"


class _Reader(Protocol):
    async def read(self, n: int = ...) -> bytes: ...


async def read_messages(
    reader: _Reader, codec: JsonRpcMessageCodec | None = None
) -> AsyncIterator[Any]:
    """Yield decoded messages from ``reader`` until end of input.

    A frame that fails to decode is logged and ends the stream.
    """
    codec = codec or JsonRpcMessageCodec()
    buf = bytearray()
    try:
        while True:
            chunk = await reader.read(_READ_CHUNK)
            if not chunk:
                break
            buf.extend(chunk)
            while (item := codec.decode(buf)) is not None:
                yield item
        while (item := codec.decode_eof(buf)) is not None:
            yield item
    except CodecError as exc:
        logger.error("Error reading from stream: %s", exc)


class JsonLineWriter:
    """Writes JSON values, one per line, to an asyncio-style stream writer."""

    def __init__(self, writer: Any) -> None:
        self._writer = writer
        self._codec = JsonRpcMessageCodec()

    async def send(self, item: Any) -> None:
        self._writer.write(self._codec.encode(item))
        await self._writer.drain()

    async def close(self) -> None:
        await self._writer.drain()
        self._writer.close()
        await self._writer.wait_closed()


class StreamTransport:
    """A message transport over a reader and a writer byte stream."""

    def __init__(self, reader: _Reader, writer: Any) -> None:
        self._messages = read_messages(reader)
        self._writer = JsonLineWriter(writer)

    async def send(self, message: Any) -> None:
        await self._writer.send(message)

    async def receive(self) -> Any:
        """Return the next message, or ``None`` once the stream has ended."""
        try:
            return await anext(self._messages)
        except StopAsyncIteration:
            return None

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._messages

    async def close(self) -> None:
        await self._writer.close()
        await self._messages.aclose()

    async def __aenter__(self) -> StreamTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def open_stdio() -> StreamTransport:
    """Open a transport over this process's standard input and output."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
    return StreamTransport(reader, writer)