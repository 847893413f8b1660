"""Async JSON-RPC transports for the Model Context Protocol and chat-client helpers."""

__version__ = "0.1.5"

__all__ = [
    "chat",
    "child_process",
    "client",
    "codec",
    "config",
    "model",
    "sse",
    "sse_server",
    "tools",
]