"""Tools that a chat session can call, including adapters for MCP servers."""

from __future__ import annotations

import abc
import json
from collections.abc import Mapping
from typing import Any, Protocol

from mcpwire.model import Content, McpError, ToolResult


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class ToolServer(Protocol):
    """The part of an MCP server connection that tools need."""

    async def list_all_tools(self) -> list[Mapping[str, Any]]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> Any: ...


class BaseTool(abc.ABC):
    """A named tool with a description and a JSON parameter schema."""

    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    @property
    @abc.abstractmethod
    def description(self) -> str: ...

    @property
    @abc.abstractmethod
    def parameters(self) -> Any: ...

    @abc.abstractmethod
    async def call(self, args: Any) -> str:
        """Run the tool with ``args`` and return its result as text."""


class McpToolAdapter(BaseTool):
    """Exposes one tool of an MCP server as a :class:`BaseTool`."""

    def __init__(self, tool: Mapping[str, Any], server: ToolServer) -> None:
        self.tool = dict(tool)
        self.server = server

    @property
    def name(self) -> str:
        return str(self.tool["name"])

    @property
    def description(self) -> str:
        return str(self.tool.get("description") or "")

    @property
    def parameters(self) -> Any:
        schema = self.tool.get("inputSchema")
        return {} if schema is None else schema

    async def call(self, args: Any) -> str:
        arguments = args if isinstance(args, dict) else None
        result = await self.server.call_tool(self.name, arguments)
        return _dumps(result)


class ToolSet:
    """Tools looked up by name; adding a tool replaces one of the same name."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def add_tool(self, tool: BaseTool) -> None:
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())


async def get_mcp_tools(server: ToolServer) -> list[McpToolAdapter]:
    """Wrap every tool that ``server`` lists."""
    return [McpToolAdapter(tool, server) for tool in await server.list_all_tools()]


def into_call_tool_result(outcome: Any) -> ToolResult:
    """Turn a value, or an :class:`McpError`, into a JSON tool result."""
    success = not isinstance(outcome, McpError)
    payload = outcome if success else outcome.to_dict()
    try:
        body = _dumps(payload)
    except (TypeError, ValueError):
        body = ""
    return ToolResult(success, [Content("application/json", body)])