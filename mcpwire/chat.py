"""An interactive chat session that lets the model call tools."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterable
from typing import TextIO

from mcpwire.client import ChatClient
from mcpwire.model import CompletionRequest, Message, Tool, ToolCall
from mcpwire.tools import BaseTool, ToolSet

_PROMPT_HEADER = (
    "you are a assistant, you can help user to complete various tasks. "
    "you have the following tools to use:\n"
)
_PROMPT_FORMAT = (
    "\nif you need to call tool, please use the following format:\n"
    "Tool: <tool name>\n"
    "Inputs: <inputs>\n"
)


def parse_tool_call(content: str) -> ToolCall | None:
    """Find a ``Tool:`` / ``Inputs:`` block in a model reply.

    The lines after ``Inputs:`` are read as JSON, or kept as a string if they
    are not valid JSON.
    """
    if "Tool:" not in content:
        return None
    name: str | None = None
    args_lines: list[str] = []
    parsing_args = False
    for line in content.split("\n"):
        if line.startswith("Tool:"):
            name = line.removeprefix("Tool:").strip()
            parsing_args = False
        elif line.startswith("Inputs:"):
            parsing_args = True
        elif parsing_args:
            args_lines.append(line.strip())
    if name is None:
        return None
    args_text = "\n".join(args_lines)
    try:
        arguments = json.loads(args_text)
    except ValueError:
        arguments = args_text
    return ToolCall(name, arguments)


def build_system_prompt(tools: Iterable[BaseTool]) -> str:
    """Describe the tools and the call format for the model."""
    parts = [_PROMPT_HEADER]
    for tool in tools:
        try:
            parameters = json.dumps(tool.parameters, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            parameters = ""
        parts.append(
            f"\ntool name: {tool.name}\ndescription: {tool.description}\n"
            f"parameters: {parameters}\n"
        )
    parts.append(_PROMPT_FORMAT)
    return "".join(parts)


class ChatSession:
    """A conversation with a model that may ask for tools to be run."""

    def __init__(self, client: ChatClient, tool_set: ToolSet, model: str) -> None:
        self.client = client
        self.tool_set = tool_set
        self.model = model
        self.messages: list[Message] = []

    def add_system_prompt(self, prompt: object) -> None:
        self.messages.append(Message.system(prompt))

    def get_tools(self) -> list[BaseTool]:
        return self.tool_set.tools()

    async def send(self, text: str) -> list[str]:
        """Send one user message, run any requested tool, return the lines to show."""
        self.messages.append(Message.user(text))
        tools = self.tool_set.tools()
        definitions = (
            [Tool(tool.name, tool.description, tool.parameters) for tool in tools]
            if tools
            else None
        )
        request = CompletionRequest(
            model=self.model,
            messages=list(self.messages),
            temperature=0.7,
            tools=definitions,
        )
        response = await self.client.complete(request)

        output: list[str] = []
        if not response.choices:
            return output
        message = response.choices[0].message
        output.append(f"AI: {message.content}")
        self.messages.append(message)

        call = parse_tool_call(message.content)
        if call is None:
            return output
        tool = self.tool_set.get_tool(call.name)
        if tool is None:
            output.append(f"tool not found: {call.name}")
            return output
        output.append(f"calling tool: {call.name}")
        try:
            result = await tool.call(call.arguments)
        except Exception as exc:
            output.append(f"tool call failed: {exc}")
            self.messages.append(Message.user(f"tool call failed: {exc}"))
        else:
            output.append(f"tool result: {result}")
            self.messages.append(Message.user(result))
        return output

    async def chat(
        self, input_stream: TextIO | None = None, output_stream: TextIO | None = None
    ) -> None:
        """Read lines until ``exit`` or end of input, answering each one."""
        source = sys.stdin if input_stream is None else input_stream
        sink = sys.stdout if output_stream is None else output_stream
        print("welcome to use simple chat client, use 'exit' to quit", file=sink)
        while True:
            print("> ", end="", file=sink, flush=True)
            line = source.readline()
            if not line:
                break
            text = line.strip()
            if not text:
                continue
            if text == "exit":
                break
            for out in await self.send(text):
                print(out, file=sink)