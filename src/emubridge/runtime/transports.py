"""Asyncio transports binding remote channels to the wire protocol."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, AsyncIterator, Mapping, Protocol

from ..dispatch.protocol import WireProtocol
from ..errors import SessionNotFoundError
from .sessions import Session, SessionChannel, SessionRegistry


logger = logging.getLogger(__name__)

MESSAGES_PATH = "/messages"
KEEPALIVE_INTERVAL = 15.0
# Longest stdio message accepted, in bytes.
STDIO_LINE_LIMIT = 4 * 1024 * 1024


class LineWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class LineReader(Protocol):
    async def readline(self) -> bytes: ...


def encode_message(message: Mapping[str, Any]) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode("utf-8") + b"\n"


class StdioTransport:
    """Sequential transport: one channel, newline-delimited JSON messages.

    Each message is dispatched to completion and its reply written before the
    next line is read, so reply N always answers request N.
    """

    def __init__(
        self,
        protocol: WireProtocol,
        reader: LineReader,
        writer: LineWriter,
    ) -> None:
        self.protocol = protocol
        self.reader = reader
        self.writer = writer
        self.handled = 0

    async def serve(self) -> None:
        """Process messages until the peer closes its side of the channel."""

        logger.info("Stdio transport serving")
        while True:
            try:
                line = await self.reader.readline()
            except ConnectionError:
                logger.info("Stdio channel reset by peer")
                break
            except ValueError as exc:
                # StreamReader drops the oversized chunk; the channel stays usable.
                logger.warning("Discarding oversized message: %s", exc)
                await self._reply(self.protocol.parse_error(f"message too long ({exc})"))
                continue
            if line == b"":
                logger.info("Stdio channel closed by peer")
                break
            if not line.strip():
                continue
            reply = self.protocol.handle_text(line)
            self.handled += 1
            if reply is None:
                continue
            if not await self._reply(reply):
                break

    async def _reply(self, reply: Mapping[str, Any]) -> bool:
        self.writer.write(encode_message(reply))
        try:
            await self.writer.drain()
        except ConnectionError:
            logger.info("Stdio channel closed while writing")
            return False
        return True


async def open_stdio_streams() -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the process stdin/stdout in asyncio streams."""

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STDIO_LINE_LIMIT)
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )
    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
    return reader, writer


def format_sse(event: str, data: str) -> str:
    """Render one Server-Sent Events frame."""

    lines = [f"event: {event}"]
    lines.extend(f"data: {chunk}" for chunk in data.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


class MultiplexedTransport:
    """Streaming transport: many channels, each identified by a session id."""

    def __init__(
        self,
        protocol: WireProtocol,
        registry: SessionRegistry | None = None,
        *,
        messages_path: str = MESSAGES_PATH,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
    ) -> None:
        self.protocol = protocol
        self.registry = registry or SessionRegistry()
        self.messages_path = messages_path
        self.keepalive_interval = keepalive_interval

    def open_session(self) -> Session:
        """Create a channel on the running loop and register it."""

        return self.registry.open(SessionChannel())

    def endpoint_for(self, session: Session) -> str:
        return f"{self.messages_path}?sessionId={session.id}"

    async def stream(self, session: Session | None = None) -> AsyncIterator[str]:
        """Yield SSE frames for ``session`` until it closes.

        Without ``session`` a new one is registered when iteration starts, so a
        stream that is never consumed leaves nothing behind. The first frame
        announces the endpoint that accepts this session's messages. Leaving
        the generator for any reason (peer disconnect, cancellation, transport
        error) deregisters the session.
        """

        if session is None:
            session = self.open_session()
            logger.info("SSE connection established: %s", session.id)
        try:
            yield format_sse("endpoint", self.endpoint_for(session))
            while True:
                try:
                    event = await session.channel.next_event(self.keepalive_interval)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if event is None:
                    break
                yield format_sse(event.event, event.data)
        finally:
            self.registry.close(session.id)

    def post(self, session_id: str, message: Any) -> None:
        """Dispatch ``message`` for ``session_id`` and push the reply.

        Raises :class:`SessionNotFoundError` for unknown or closed sessions;
        such messages are never queued.
        """

        session = self.registry.get(session_id)
        if isinstance(message, (str, bytes)):
            reply = self.protocol.handle_text(message)
        else:
            reply = self.protocol.handle(message)
        if reply is None:
            return
        if not session.channel.push("message", json.dumps(reply)):
            # Closed between lookup and delivery.
            raise SessionNotFoundError(session_id)

    def close_session(self, session_id: str) -> bool:
        return self.registry.close(session_id)


__all__ = [
    "KEEPALIVE_INTERVAL",
    "MESSAGES_PATH",
    "MultiplexedTransport",
    "STDIO_LINE_LIMIT",
    "StdioTransport",
    "encode_message",
    "format_sse",
    "open_stdio_streams",
]
