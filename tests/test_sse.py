import json

import pytest
from aiohttp import web

from mcpwire.sse import (
    AiohttpSseClient,
    RetryConfig,
    SseClient,
    SseEvent,
    SseParser,
    SseTransport,
    SseTransportError,
    UnexpectedContentType,
    UnexpectedEndOfStream,
    parse_sse,
)

SAMPLE = (
    b"event: endpoint\ndata: /message?sessionId=abc\n\n"
    b": a comment\n"
    b"id: 5\nretry: 3000\nevent: message\ndata: {\"id\":1}\n\n"
)


def _feed_all(chunks):
    parser = SseParser()
    events = []
    for chunk in chunks:
        events.extend(parser.feed(chunk))
    events.extend(parser.finish())
    return events


async def _stream(items):
    for item in items:
        if isinstance(item, BaseException):
            raise item
        yield item


def test_parser_basic_events():
    events = _feed_all([SAMPLE])
    assert events == [
        SseEvent(event="endpoint", data="/message?sessionId=abc"),
        SseEvent(event="message", data='{"id":1}', id="5", retry=3000),
    ]


def test_parser_multiline_data_joined_with_newline():
    events = _feed_all([b"data: a\ndata: b\n\n"])
    assert events == [SseEvent(data="a\nb")]


def test_parser_bytewise_feeding_matches_whole():
    whole = _feed_all([SAMPLE])
    bytewise = _feed_all([SAMPLE[i : i + 1] for i in range(len(SAMPLE))])
    assert bytewise == whole


def test_parser_line_endings_equivalent():
    lf = _feed_all([SAMPLE])
    crlf = _feed_all([SAMPLE.replace(b"\n", b"\r\n")])
    cr = _feed_all([SAMPLE.replace(b"\n", b"\r")])
    assert crlf == lf
    assert cr == lf


def test_parser_crlf_split_across_chunks():
    events = _feed_all([b"data: x\r", b"\n\r", b"\n"])
    assert events == [SseEvent(data="x")]


def test_parser_ignores_invalid_retry_and_comments():
    events = _feed_all([b": only a comment\n\nretry: soon\ndata: z\n\n"])
    assert events == [SseEvent(data="z")]


def test_parser_finish_drops_incomplete_event():
    parser = SseParser()
    assert parser.feed(b"data: unfinished\n") == []
    assert parser.finish() == []


@pytest.mark.asyncio
async def test_parse_sse_over_async_chunks():
    chunks = _stream([SAMPLE[:10], SAMPLE[10:]])
    events = [event async for event in parse_sse(chunks)]
    assert events == _feed_all([SAMPLE])


class FakeClient(SseClient):
    def __init__(self, streams, post_error=None):
        self.streams = list(streams)
        self.connects = []
        self.posts = []
        self.post_error = post_error

    async def connect(self, last_event_id=None):
        self.connects.append(last_event_id)
        if not self.streams:
            raise SseTransportError("refused")
        return _stream(self.streams.pop(0))

    async def post(self, endpoint, message):
        if self.post_error is not None:
            raise self.post_error
        self.posts.append((endpoint, message))


ENDPOINT = SseEvent(event="endpoint", data="/message?sessionId=abc")


@pytest.mark.asyncio
async def test_start_reads_endpoint_and_messages():
    client = FakeClient(
        [
            [
                SseEvent(id="1"),
                ENDPOINT,
                SseEvent(event="message", data='{"jsonrpc":"2.0","id":1}'),
                SseEvent(event="message", data="not json"),
                SseEvent(id="2"),
                SseEvent(event="message", data='{"jsonrpc":"2.0","id":2}'),
            ]
        ]
    )
    transport = await SseTransport.start_with_client(client)
    assert transport.session_id == "/message?sessionId=abc"
    assert transport.last_event_id == "1"
    messages = [message async for message in transport]
    assert messages == [{"jsonrpc": "2.0", "id": 1}, {"jsonrpc": "2.0", "id": 2}]
    assert transport.last_event_id == "2"
    assert await transport.receive() is None


@pytest.mark.asyncio
async def test_start_without_endpoint_raises():
    client = FakeClient([[SseEvent(event="message", data="{}")]])
    with pytest.raises(UnexpectedEndOfStream):
        await SseTransport.start_with_client(client)


@pytest.mark.asyncio
async def test_reconnects_with_last_event_id():
    client = FakeClient(
        [
            [ENDPOINT, SseEvent(id="7", data='{"a":1}'), OSError("reset")],
            [SseEvent(data='{"b":2}')],
        ]
    )
    transport = await SseTransport.start_with_client(
        client, RetryConfig(min_duration=0.0)
    )
    assert await transport.receive() == {"a": 1}
    assert await transport.receive() == {"b": 2}
    assert client.connects == [None, "7"]
    assert await transport.receive() is None


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_times():
    client = FakeClient([[ENDPOINT, SseTransportError("broken")]])
    transport = await SseTransport.start_with_client(
        client, RetryConfig(max_times=2, min_duration=0.0)
    )
    assert await transport.receive() is None
    assert len(client.connects) == 3
    assert await transport.receive() is None
    assert len(client.connects) == 3


@pytest.mark.asyncio
async def test_send_posts_to_session_endpoint():
    client = FakeClient([[ENDPOINT]])
    transport = await SseTransport.start_with_client(client)
    messages = [{"jsonrpc": "2.0", "id": i, "method": "ping"} for i in range(20)]
    for message in messages:
        await transport.send(message)
    await transport.close()
    assert client.posts == [("/message?sessionId=abc", m) for m in messages]


@pytest.mark.asyncio
async def test_flush_raises_post_failure():
    client = FakeClient([[ENDPOINT]], post_error=SseTransportError("denied"))
    transport = await SseTransport.start_with_client(client)
    await transport.send({"jsonrpc": "2.0", "method": "ping"})
    with pytest.raises(SseTransportError, match="denied"):
        await transport.flush()


def test_aiohttp_client_rejects_invalid_url():
    with pytest.raises(SseTransportError):
        AiohttpSseClient("not a url")


async def _run_app(app):
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    return runner, f"http://127.0.0.1:{port}"


@pytest.mark.asyncio
async def test_end_to_end_over_http():
    received = []

    async def sse_handler(request):
        response = web.StreamResponse()
        response.content_type = "text/event-stream"
        await response.prepare(request)
        await response.write(b"event: endpoint\ndata: /message?sessionId=abc\n\n")
        await response.write(
            b'event: message\ndata: {"jsonrpc":"2.0","id":1,"result":{}}\n\n'
        )
        return response

    async def post_handler(request):
        received.append((request.query["sessionId"], json.loads(await request.text())))
        return web.Response(status=202)

    app = web.Application()
    app.router.add_get("/sse", sse_handler)
    app.router.add_post("/message", post_handler)
    runner, base = await _run_app(app)
    try:
        transport = await SseTransport.start(f"{base}/sse")
        assert await transport.receive() == {"jsonrpc": "2.0", "id": 1, "result": {}}
        outgoing = {"jsonrpc": "2.0", "id": 9, "method": "tools/list"}
        await transport.send(outgoing)
        await transport.close()
        assert received == [("abc", outgoing)]
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_wrong_content_type_rejected():
    async def handler(request):
        return web.Response(text="hello")

    app = web.Application()
    app.router.add_get("/sse", handler)
    runner, base = await _run_app(app)
    try:
        with pytest.raises(UnexpectedContentType) as info:
            await SseTransport.start(f"{base}/sse")
        assert info.value.content_type.startswith("text/plain")
    finally:
        await runner.cleanup()