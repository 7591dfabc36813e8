"""Command dispatcher producing uniform success and error envelopes."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping

from ..errors import EmulatorError, EngineFailure, NotLoadedError
from ..rom_library import RomLibrary
from ..service import EmulatorService, Snapshot
from .registry import CommandContext, CommandRegistry, CommandResult, TextResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """A named, parameterised request for exactly one service operation."""

    name: str
    parameters: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def from_envelope(cls, envelope: Mapping[str, Any]) -> "Command":
        """Build a command from a ``{"tool": ..., "params": ...}`` request body."""

        name = envelope.get("tool")
        params = envelope.get("params")
        return cls(name=name, parameters=params if params is not None else {})  # type: ignore[arg-type]


@dataclass(frozen=True)
class DispatchResponse:
    """HTTP-style status plus the JSON body returned to the caller."""

    status: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status < 400


def render_result(result: CommandResult) -> Dict[str, Any]:
    """Wrap ``result`` into the ``{"content": [...]}`` success envelope."""

    if isinstance(result, Snapshot):
        item: Dict[str, Any] = {
            "type": "image",
            "encoding": result.encoding,
            "payload": base64.b64encode(result.payload).decode("ascii"),
        }
    elif isinstance(result, TextResult):
        item = {"type": "text", "payload": result.payload}
    else:
        raise TypeError(f"unsupported command result: {type(result)!r}")
    return {"content": [item]}


def render_error(error: EmulatorError) -> DispatchResponse:
    return DispatchResponse(status=error.status, body=error.to_payload())


class CommandDispatcher:
    """Validate commands, enforce preconditions and invoke the service.

    :meth:`dispatch` never raises for command-originated failures: every
    :class:`EmulatorError`, and any unexpected exception from a handler, comes
    back as a structured :class:`DispatchResponse`.
    """

    def __init__(
        self,
        service: EmulatorService,
        rom_library: RomLibrary,
        registry: CommandRegistry | None = None,
    ) -> None:
        self._service = service
        self._registry = registry or CommandRegistry()
        self._context = CommandContext(service=service, rom_library=rom_library)

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def service(self) -> EmulatorService:
        return self._service

    def execute(self, command: Command) -> CommandResult:
        """Run ``command`` and return the raw result, raising on failure."""

        spec = self._registry.resolve(command.name)
        params = spec.validate(command.parameters)
        if spec.requires_loaded and not self._service.loaded:
            raise NotLoadedError()
        logger.debug("Dispatching %s %s", spec.name.value, params)
        return spec.handler(self._context, params)

    def dispatch(self, command: Command) -> DispatchResponse:
        """Run ``command`` and return a success or error envelope."""

        try:
            body = render_result(self.execute(command))
        except EmulatorError as exc:
            level = logging.ERROR if exc.status >= 500 else logging.WARNING
            logger.log(level, "Command %s failed: %s", command.name, exc.message)
            return render_error(exc)
        except Exception as exc:
            logger.exception("Unexpected failure while running %s", command.name)
            return render_error(EngineFailure(f"Failed to call tool: {exc}"))
        return DispatchResponse(status=200, body=body)


__all__ = [
    "Command",
    "CommandDispatcher",
    "DispatchResponse",
    "render_error",
    "render_result",
]
