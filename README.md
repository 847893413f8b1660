# mcpwire

mcpwire provides async transports for the Model Context Protocol. It also
includes the parts of a small tool-calling chat client.

Each transport moves JSON-RPC messages as plain Python objects: dicts,
lists, numbers and strings. Call `send(message)` to write one. Call
`receive()` to get the next one. `receive()` returns `None` once the peer has
gone away. `async for message in transport` goes through the messages until
that point. `close()` shuts the transport down, and most transports can also
be used with `async with`.

## Modules

| Module | Contents |
| --- | --- |
| `mcpwire.codec` | `JsonRpcMessageCodec` for newline-delimited JSON framing, `read_messages`, `JsonLineWriter`, `StreamTransport` and `open_stdio`. |
| `mcpwire.child_process` | `ChildProcessTransport`, which starts a program and exchanges messages with it over its stdin and stdout. |
| `mcpwire.sse` | `SseEvent`, `SseParser` and `parse_sse` for `text/event-stream` data. `SseTransport` is the client side of the SSE transport and is configured with `RetryConfig`. It uses the `SseClient` interface, and `AiohttpSseClient` is the default implementation. |
| `mcpwire.sse_server` | `SseServer`, `SseServerConfig`, `SseServerTransport` and `new_session_id`. |
| `mcpwire.model` | `Message`, `Tool`, `CompletionRequest`, `CompletionResponse`, `Choice`, `ToolCall`, `Content`, `ToolResult` and `McpError`. |
| `mcpwire.tools` | `BaseTool`, `McpToolAdapter`, `ToolSet`, `get_mcp_tools` and `into_call_tool_result`. |
| `mcpwire.config` | `Config`, `McpConfig`, `McpServerConfig`, `SseTransportConfig`, `StdioTransportConfig` and `parse_transport_config`. |
| `mcpwire.client` | `ChatClient` and `OpenAIClient`. |
| `mcpwire.chat` | `ChatSession`, `parse_tool_call` and `build_system_prompt`. |

## Framing

```python
from mcpwire.codec import JsonRpcMessageCodec, MaxLineLengthExceeded

codec = JsonRpcMessageCodec(max_length=1 << 20)
wire = codec.encode({"jsonrpc": "2.0", "method": "ping", "id": 1})  # compact JSON + b"\n"

buf = bytearray(wire)
message = codec.decode(buf)  # the decoded dict; None while no full line is buffered
```

`decode` takes bytes off the front of the buffer. A trailing `\r` is removed
from a line before it is parsed. The codec raises `MaxLineLengthExceeded`
when a line grows past `max_length` without a newline. After that it drops
input up to the next newline and then decodes normally again.
`decode_eof` also accepts a last line that has no newline. A line that is not
valid JSON raises `CodecError`.

`read_messages(reader)` yields the messages it reads from any object that has
an async `read(n)`. If a frame cannot be decoded, the error is logged and the
stream ends. `StreamTransport(reader, writer)` combines this with a
`JsonLineWriter` over an asyncio stream writer. `await open_stdio()` returns a
`StreamTransport` over the process's own stdin and stdout.

## Child processes

```python
import asyncio
from mcpwire.child_process import ChildProcessTransport

async def main():
    async with await ChildProcessTransport.spawn("uvx", "mcp-server-git") as transport:
        await transport.send({"jsonrpc": "2.0", "method": "tools/list", "id": 1})
        print(await transport.receive())

asyncio.run(main())
```

`spawn(program, *args, env=None, stderr=None)` starts the program with its
stdin and stdout connected by pipes. `env` is added to the inherited
environment. `stderr` is passed to the subprocess unchanged. `close()` kills
the child if it is still running and then waits for it to exit.

## Server-sent events: client

`await SseTransport.start(url)` opens the event stream. It then reads events
until the server sends an `endpoint` event, whose data becomes the
transport's `session_id`. If the stream ends before that event,
`UnexpectedEndOfStream` is raised. If the response is not `text/event-stream`,
`UnexpectedContentType` is raised.

Every `send` is posted to the endpoint as a separate task. When 16 posts are
pending, `send` waits for the oldest one to finish. `flush()` waits for all
of them and re-raises the first failure.

Events that carry data are parsed as JSON and returned by `receive()`. Events
whose data is not JSON are logged and skipped. When the stream breaks, the
transport waits and then reconnects, sending the last event id it has seen.
The wait is `RetryConfig.min_duration` seconds, or the server's `retry`
value if that is longer. Once `RetryConfig.max_times` attempts have failed,
`receive()` returns `None`. A custom `SseClient` can be passed to
`SseTransport.start_with_client(client, retry_config)`.

## Server-sent events: server

```python
import asyncio
from mcpwire.sse_server import SseServer

async def echo(transport):
    async for message in transport:
        await transport.send(message)

async def main():
    server = await SseServer.serve("127.0.0.1", 8000)
    cancel_event = server.with_handler(echo)
    await cancel_event.wait()

asyncio.run(main())
```

Each GET on `sse_path` (default `/sse`) opens a session with a new random id.
The server first sends an `endpoint` event with the data
`<post_path>?sessionId=<id>`. After that, every message passed to
`SseServerTransport.send` goes out as a `message` event. A keep-alive comment
is sent whenever no message has gone out for `sse_keep_alive` seconds, which
defaults to 15.

Clients POST JSON to `post_path` (default `/message`). The server replies:

| Status | When |
| --- | --- |
| 202 | The message was accepted. |
| 400 | `sessionId` is missing, or the body is not valid JSON. |
| 404 | The session is unknown. |
| 410 | The session has been closed. |

There are three ways to get sessions:

- `next_transport()`
- `async for transport in server`
- `with_handler(handler)`, which runs the handler on every session and closes the session when the handler returns

`cancel()`, or setting `config.cancel_event`, stops the server and closes the
open sessions. `SseServer.create(config)` returns the server together with an
unstarted `aiohttp.web.Application`, so you can mount and run it yourself.

## Chat client pieces

`Config.load(path)` reads a TOML file:

```toml
openai_key = "placeholder"
chat_url = "https://api.example.com/v1/chat/completions"
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
```

Every key is optional. `Config` also accepts `deepseek_key` and `cohere_key`.
A server entry with a missing or unknown `protocol` raises `ValueError`.
`await config.mcp.start_all()` starts every listed server at the same time
and returns a dict that maps each name to its transport
(`ChildProcessTransport` or `SseTransport`). A server that fails to start is
reported on stderr and left out of the dict.

`OpenAIClient(api_key, url=None)` posts a `CompletionRequest` to an
OpenAI-compatible endpoint. The default endpoint is
`https://api.openai.com/v1/chat/completions`. The client returns a
`CompletionResponse`. It prints the endpoint and the request body to stdout.
If the response status is not 2xx, it raises `RuntimeError`.

`ChatSession(client, tool_set, model)` keeps the conversation.
`build_system_prompt(tools)` describes the tools to the model and asks for
tool calls in this form:

```
Tool: <tool name>
Inputs: <inputs>
```

`await session.send(text)` does the following:

1. Sends the user message, with temperature 0.7 and the tool definitions.
2. Uses `parse_tool_call` to find a tool request in the reply.
3. If there is one, calls that tool from the `ToolSet` and adds the result to the conversation.
4. Returns the lines to display.

`await session.chat(input_stream, output_stream)` runs this as an interactive
loop, by default over stdin and stdout. It stops on `exit` or at end of input.

`into_call_tool_result(outcome)` turns a value into a successful JSON
`ToolResult`. It turns an `McpError` into a failed one.

## What this package does not do

The package has no MCP protocol layer. It does not perform the initialize
handshake, does not match requests to responses, and has no typed MCP
requests. The transports carry raw JSON-RPC messages and leave the protocol
to you.

`McpToolAdapter` and `get_mcp_tools` work with any object that provides
`list_all_tools()` and `call_tool(name, arguments)`. The package itself
supplies no such object, so these two need an MCP client from elsewhere.
The transports that `McpConfig.start_all()` returns cannot be used for this
directly.

There is also no command-line program. `ChatSession.chat` is the interactive
loop, and you have to build and start it from your own code.

## Tests

The tests use pytest and pytest-asyncio. Install both with the `test` extra:

```
pip install -e ".[test]"
pytest
```