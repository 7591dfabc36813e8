"""Session registry for the multiplexed (streaming) transport."""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, Iterator

from ..errors import SessionNotFoundError


logger = logging.getLogger(__name__)


class SessionLifecycle(Enum):
    OPEN = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class ChannelEvent:
    """One server-sent event queued for delivery."""

    event: str
    data: str


class SessionChannel:
    """Output sink for one long-lived channel.

    Events may be pushed from the event loop or from worker threads; delivery
    always happens on the loop that created the channel.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[ChannelEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: str, data: str) -> bool:
        """Queue ``event``; returns ``False`` once the channel is closed."""

        if self._closed:
            return False
        self._enqueue(ChannelEvent(event=event, data=data))
        return True

    async def next_event(self, timeout: float | None = None) -> ChannelEvent | None:
        """Wait for the next event; ``None`` means the channel closed.

        Raises :class:`asyncio.TimeoutError` when ``timeout`` elapses first.
        """

        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._enqueue(None)

    def _enqueue(self, item: ChannelEvent | None) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)


@dataclass
class Session:
    """Routing record binding a session id to its output channel."""

    id: str
    channel: SessionChannel
    lifecycle: SessionLifecycle = field(default=SessionLifecycle.OPEN)

    @property
    def is_open(self) -> bool:
        return self.lifecycle is SessionLifecycle.OPEN


class SessionRegistry:
    """Process-wide mapping of session ids to open sessions."""

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def open(self, channel: SessionChannel) -> Session:
        """Register ``channel`` under a fresh, unused session id."""

        with self._lock:
            session_id = self._id_factory()
            while session_id in self._sessions:
                session_id = self._id_factory()
            session = Session(id=session_id, channel=channel)
            self._sessions[session_id] = session
        logger.info("Opened session %s", session_id)
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def close(self, session_id: str) -> bool:
        """Deregister ``session_id`` and close its channel."""

        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.lifecycle = SessionLifecycle.CLOSED
        session.channel.close()
        logger.info("Closed session %s", session_id)
        return True

    def close_all(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.close(session_id)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._sessions))


__all__ = [
    "ChannelEvent",
    "Session",
    "SessionChannel",
    "SessionLifecycle",
    "SessionRegistry",
]
