import sys

import pytest

from mcpwire.config import (
    Config,
    McpConfig,
    McpServerConfig,
    SseTransportConfig,
    StdioTransportConfig,
    parse_transport_config,
)
from mcpwire.sse import SseTransportError

TOML = """
openai_key = "placeholder"
model_name = "gpt-4o-mini"

[[mcp.server]]
name = "git"
protocol = "stdio"
command = "uvx"
args = ["mcp-server-git"]

[[mcp.server]]
name = "remote"
protocol = "sse"
url = "http://localhost:8000/sse"
"""


def test_parse_sse():
    config = parse_transport_config({"protocol": "sse", "url": "http://localhost:8000/sse"})
    assert config == SseTransportConfig("http://localhost:8000/sse")


def test_parse_stdio_defaults():
    config = parse_transport_config({"protocol": "stdio", "command": "uvx"})
    assert config == StdioTransportConfig("uvx", [], {})


def test_parse_stdio_full():
    config = parse_transport_config(
        {"protocol": "stdio", "command": "uvx", "args": ["a"], "envs": {"K": "v"}}
    )
    assert config.args == ["a"]
    assert config.envs == {"K": "v"}


@pytest.mark.parametrize(
    "data",
    [
        {"protocol": "ftp"},
        {"url": "http://localhost"},
        {"protocol": "sse"},
        {"protocol": "stdio"},
        {"protocol": "stdio", "command": "x", "args": "notalist"},
    ],
)
def test_parse_invalid(data):
    with pytest.raises(ValueError):
        parse_transport_config(data)


def test_server_config_flattened():
    server = McpServerConfig.from_dict({"name": "s", "protocol": "sse", "url": "http://localhost/"})
    assert server.name == "s"
    assert server.transport == SseTransportConfig("http://localhost/")


def test_load(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(TOML)
    config = Config.load(path)
    assert config.openai_key == "placeholder"
    assert config.model_name == "gpt-4o-mini"
    assert config.chat_url is None
    assert [s.name for s in config.mcp.server] == ["git", "remote"]
    assert config.mcp.server[0].transport == StdioTransportConfig("uvx", ["mcp-server-git"], {})


def test_from_dict_without_mcp():
    config = Config.from_dict({"chat_url": "http://localhost/chat"})
    assert config.mcp is None
    assert config.chat_url == "http://localhost/chat"


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(tmp_path / "absent.toml")


def test_mcp_config_requires_server():
    with pytest.raises(ValueError):
        McpConfig.from_dict({})


@pytest.mark.asyncio
async def test_stdio_start_passes_env():
    script = "import json, os; print(json.dumps({'v': os.environ['MCPWIRE_TEST']}), flush=True)"
    config = StdioTransportConfig(sys.executable, ["-c", script], {"MCPWIRE_TEST": "hello"})
    transport = await config.start()
    try:
        assert await transport.receive() == {"v": "hello"}
    finally:
        await transport.close()


@pytest.mark.asyncio
async def test_sse_start_rejects_bad_url():
    with pytest.raises(SseTransportError):
        await SseTransportConfig("not a url").start()


@pytest.mark.asyncio
async def test_start_all_skips_failures(capsys):
    script = "import json; print(json.dumps({'ready': True}), flush=True)"
    config = McpConfig(
        [
            McpServerConfig("good", StdioTransportConfig(sys.executable, ["-c", script])),
            McpServerConfig("bad", StdioTransportConfig("/nonexistent/missing-program")),
        ]
    )
    clients = await config.start_all()
    try:
        assert set(clients) == {"good"}
        assert await clients["good"].receive() == {"ready": True}
    finally:
        for client in clients.values():
            await client.close()
    assert "Failed to start server" in capsys.readouterr().err