"""Command dispatch: registry, dispatcher and wire protocol."""

from __future__ import annotations

from .dispatcher import (
    Command,
    CommandDispatcher,
    DispatchResponse,
    render_error,
    render_result,
)
from .protocol import WireProtocol
from .registry import (
    CommandContext,
    CommandName,
    CommandRegistry,
    CommandSpec,
    ParameterSpec,
    TextResult,
)

__all__ = [
    "Command",
    "CommandContext",
    "CommandDispatcher",
    "CommandName",
    "CommandRegistry",
    "CommandSpec",
    "DispatchResponse",
    "ParameterSpec",
    "TextResult",
    "WireProtocol",
    "render_error",
    "render_result",
]
