"""Stream transports — newline-delimited JSON over byte streams.

:class:`StreamTransport` frames any pair of asyncio streams.
:class:`StdioTransport` launches an MCP server as a subprocess and talks to
its stdin/stdout; :func:`stdio_server_transport` wraps the current process's
own stdin/stdout for the server side of that binding.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import sys

from mcpcore.errors import TransportError

logger = logging.getLogger(__name__)

# Largest accepted frame; asyncio's default 64 KiB is too small for resource blobs.
DEFAULT_FRAME_LIMIT = 16 * 1024 * 1024


class StreamTransport:
    """Sends and receives newline-delimited JSON frames over asyncio streams."""

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: asyncio.StreamWriter | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def connect(self) -> None:
        """Streams handed to the constructor are already connected."""
        if self._reader is None or self._writer is None:
            msg = "StreamTransport needs a reader and a writer"
            raise TransportError(msg)

    def is_connected(self) -> bool:
        return not self._closed and self._reader is not None and self._writer is not None

    async def send(self, frame: bytes) -> None:
        """Write *frame* followed by a newline."""
        if self._closed or self._writer is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        if b"\n" in frame:
            msg = "Frame must not contain a newline"
            raise TransportError(msg)
        try:
            self._writer.write(frame + b"\n")
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._closed = True
            raise TransportError(f"Send failed: {exc}") from exc

    async def receive(self) -> bytes:
        """Read the next complete, non-empty line."""
        if self._closed or self._reader is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        while True:
            try:
                line = await self._reader.readline()
            except ValueError as exc:
                # StreamReader reports an over-long line as ValueError
                self._closed = True
                raise TransportError(f"Frame exceeds limit: {exc}") from exc
            except (ConnectionError, OSError) as exc:
                self._closed = True
                raise TransportError(f"Receive failed: {exc}") from exc

            if not line:
                self._closed = True
                msg = "Transport closed"
                raise TransportError(msg)
            if not line.endswith(b"\n"):
                self._closed = True
                msg = "Transport closed mid-frame (truncated frame)"
                raise TransportError(msg)

            frame = line.strip()
            if frame:
                return frame

    async def close(self) -> None:
        """Close the writer; safe to call repeatedly or after the peer left."""
        if self._closed and self._writer is None:
            return
        self._closed = True
        writer, self._writer = self._writer, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug("Ignoring error while closing stream: %s", exc)


class StdioTransport(StreamTransport):
    """Communicates with an MCP server via subprocess stdin/stdout."""

    def __init__(self, command: str, env: dict[str, str] | None = None) -> None:
        super().__init__()
        self._command = command
        self._env = env
        self._process: asyncio.subprocess.Process | None = None

    async def connect(self) -> None:
        """Launch the subprocess."""
        parts = shlex.split(self._command)
        if not parts:
            msg = "StdioTransport needs a non-empty command"
            raise TransportError(msg)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *parts,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                env=self._env,
                limit=DEFAULT_FRAME_LIMIT,
            )
        except OSError as exc:
            raise TransportError(f"Cannot launch {parts[0]!r}: {exc}") from exc
        self._reader = self._process.stdout
        self._writer = self._process.stdin  # type: ignore[assignment]
        self._closed = False
        logger.info("Launched MCP server process %s (pid %s)", parts[0], self._process.pid)

    async def close(self) -> None:
        """Close stdin and terminate the subprocess."""
        await super().close()
        process, self._process = self._process, None
        if process is None:
            return
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                logger.debug("MCP server process %s already exited", process.pid)
        await process.wait()


async def stdio_server_transport() -> StreamTransport:
    """Wrap the current process's stdin/stdout as a :class:`StreamTransport`."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=DEFAULT_FRAME_LIMIT)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
    return StreamTransport(reader, writer)
