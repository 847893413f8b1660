"""Configuration for the chat client and the MCP servers it starts."""

from __future__ import annotations

import asyncio
import sys
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from os import PathLike
from typing import Any

from mcpwire.child_process import ChildProcessTransport
from mcpwire.sse import SseTransport


def _string(data: Mapping[str, Any], key: str) -> str:
    try:
        value = data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None
    if not isinstance(value, str):
        raise ValueError(f"invalid type for `{key}`: expected a string")
    return value


def _optional_string(data: Mapping[str, Any], key: str) -> str | None:
    if data.get(key) is None:
        return None
    return _string(data, key)


@dataclass(frozen=True)
class SseTransportConfig:
    """A server reached over server-sent events at ``url``."""

    url: str

    async def start(self) -> SseTransport:
        """Connect to the server."""
        return await SseTransport.start(self.url)


@dataclass
class StdioTransportConfig:
    """A server started as a child process that speaks over stdin and stdout."""

    command: str
    args: list[str] = field(default_factory=list)
    envs: dict[str, str] = field(default_factory=dict)

    async def start(self) -> ChildProcessTransport:
        """Spawn the server process."""
        return await ChildProcessTransport.spawn(
            self.command, *self.args, env=self.envs or None
        )


TransportConfig = SseTransportConfig | StdioTransportConfig


def parse_transport_config(data: Mapping[str, Any]) -> TransportConfig:
    """Build a transport config from a mapping tagged by its ``protocol`` key."""
    protocol = data.get("protocol")
    match protocol:
        case "sse":
            return SseTransportConfig(_string(data, "url"))
        case "stdio":
            command = _string(data, "command")
            args = data.get("args", [])
            if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
                raise ValueError("invalid type for `args`: expected a list of strings")
            envs = data.get("envs", {})
            if not isinstance(envs, Mapping) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in envs.items()
            ):
                raise ValueError("invalid type for `envs`: expected a table of strings")
            return StdioTransportConfig(command, list(args), dict(envs))
        case None:
            raise ValueError("missing field `protocol`")
        case _:
            raise ValueError(f"unknown variant `{protocol}`, expected `sse` or `stdio`")


@dataclass
class McpServerConfig:
    """A named MCP server and how to reach it."""

    name: str
    transport: TransportConfig

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> McpServerConfig:
        return cls(_string(data, "name"), parse_transport_config(data))


@dataclass
class McpConfig:
    """The MCP servers to start."""

    server: list[McpServerConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> McpConfig:
        try:
            servers = data["server"]
        except KeyError:
            raise ValueError("missing field `server`") from None
        if not isinstance(servers, list):
            raise ValueError("invalid type for `server`: expected a list")
        return cls([McpServerConfig.from_dict(entry) for entry in servers])

    async def start_all(self) -> dict[str, Any]:
        """Start every server at once; those that fail are reported and left out."""

        async def start_one(server: McpServerConfig) -> tuple[str, Any]:
            return server.name, await server.transport.start()

        results = await asyncio.gather(
            *(start_one(server) for server in self.server), return_exceptions=True
        )
        clients: dict[str, Any] = {}
        for result in results:
            if isinstance(result, Exception):
                print(f"Failed to start server: {result!r}", file=sys.stderr)
            elif isinstance(result, BaseException):
                raise result
            else:
                name, client = result
                clients[name] = client
        return clients


@dataclass
class Config:
    """Settings for the chat client."""

    openai_key: str | None = None
    chat_url: str | None = None
    mcp: McpConfig | None = None
    model_name: str | None = None
    deepseek_key: str | None = None
    cohere_key: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        mcp = data.get("mcp")
        return cls(
            openai_key=_optional_string(data, "openai_key"),
            chat_url=_optional_string(data, "chat_url"),
            mcp=None if mcp is None else McpConfig.from_dict(mcp),
            model_name=_optional_string(data, "model_name"),
            deepseek_key=_optional_string(data, "deepseek_key"),
            cohere_key=_optional_string(data, "cohere_key"),
        )

    @classmethod
    def load(cls, path: str | PathLike[str]) -> Config:
        """Read the configuration from a TOML file."""
        with open(path, "rb") as file:
            return cls.from_dict(tomllib.load(file))