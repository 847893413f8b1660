import contextlib

import pytest
from aiohttp import web

from mcpwire.client import DEFAULT_URL, OpenAIClient
from mcpwire.model import CompletionRequest, Message

COMPLETION = {
    "id": "cmpl-1",
    "object": "chat.completion",
    "created": 1,
    "model": "gpt-4o-mini",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "hi there"},
            "finish_reason": "stop",
        }
    ],
}


@contextlib.asynccontextmanager
async def _serve(handler):
    app = web.Application()
    app.router.add_post("/v1/chat", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    try:
        yield f"http://127.0.0.1:{port}/v1/chat"
    finally:
        await runner.cleanup()


def test_default_url():
    assert OpenAIClient("placeholder").base_url == DEFAULT_URL


def test_with_base_url():
    client = OpenAIClient("placeholder", "http://localhost/a")
    returned = client.with_base_url("http://localhost/b")
    assert returned is client
    assert client.base_url == "http://localhost/b"


@pytest.mark.asyncio
async def test_complete_round_trip():
    seen = {}

    async def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = await request.json()
        return web.json_response(COMPLETION)

    request = CompletionRequest("gpt-4o-mini", [Message.user("hello")], temperature=0.5)
    async with _serve(handler) as url:
        response = await OpenAIClient("placeholder", url).complete(request)

    assert seen["auth"] == "Bearer placeholder"
    assert seen["body"] == request.to_dict()
    assert response.id == "cmpl-1"
    assert response.choices[0].message == Message.assistant("hi there")


@pytest.mark.asyncio
async def test_complete_error_status():
    async def handler(request):
        return web.Response(status=500, text="boom")

    async with _serve(handler) as url:
        with pytest.raises(RuntimeError, match="API Error: boom"):
            await OpenAIClient("placeholder", url).complete(
                CompletionRequest("m", [Message.user("x")])
            )


@pytest.mark.asyncio
async def test_complete_malformed_response():
    async def handler(request):
        return web.json_response({"id": "x"})

    async with _serve(handler) as url:
        with pytest.raises(ValueError):
            await OpenAIClient("placeholder", url).complete(
                CompletionRequest("m", [Message.user("x")])
            )