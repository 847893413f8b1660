"""A message transport over the standard streams of a child process."""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import AsyncIterator, Mapping
from typing import Any

from mcpwire.codec import StreamTransport


class ChildProcessTransport:
    """Talks newline-delimited JSON to a spawned program's stdin and stdout.

    The child is killed when the transport is closed.
    """

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        if process.stdin is None:
            raise OSError("std in was taken")
        if process.stdout is None:
            raise OSError("std out was taken")
        self.process = process
        self._transport = StreamTransport(process.stdout, process.stdin)

    @classmethod
    async def spawn(
        cls,
        program: str,
        *args: str,
        env: Mapping[str, str] | None = None,
        stderr: Any = None,
    ) -> ChildProcessTransport:
        """Start ``program`` with piped stdin and stdout.

        ``env`` adds to the inherited environment; ``stderr`` is passed to the
        process as is (``None`` inherits it).
        """
        full_env = {**os.environ, **env} if env else None
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=stderr,
            env=full_env,
        )
        return cls(process)

    async def send(self, message: Any) -> None:
        await self._transport.send(message)

    async def receive(self) -> Any:
        """Return the next message, or ``None`` once the child's output ends."""
        return await self._transport.receive()

    def __aiter__(self) -> AsyncIterator[Any]:
        return aiter(self._transport)

    async def close(self) -> None:
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            await self._transport.close()
        if self.process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self.process.kill()
        await self.process.wait()

    async def __aenter__(self) -> ChildProcessTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()