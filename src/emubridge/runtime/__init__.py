"""Runtime layer: transports, HTTP front end and the command-line entry point."""
from __future__ import annotations

from .sessions import SessionChannel, SessionRegistry
from .transports import MultiplexedTransport, StdioTransport

__all__ = [
    "MultiplexedTransport",
    "SessionChannel",
    "SessionRegistry",
    "StdioTransport",
]
