"""Static command table mapping command names to service operations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping

from ..buttons import Button
from ..config import DEFAULT_MAX_DURATION_FRAMES
from ..errors import InvalidParameterError, UnknownCommandError
from ..rom_library import RomLibrary
from ..service import EmulatorService, Snapshot


class CommandName(Enum):
    """Every command the bridge understands."""

    PRESS_UP = "press_up"
    PRESS_DOWN = "press_down"
    PRESS_LEFT = "press_left"
    PRESS_RIGHT = "press_right"
    PRESS_A = "press_a"
    PRESS_B = "press_b"
    PRESS_START = "press_start"
    PRESS_SELECT = "press_select"
    WAIT_FRAMES = "wait_frames"
    LOAD_ROM = "load_rom"
    GET_SCREEN = "get_screen"
    PEEK_SCREEN = "peek_screen"
    IS_ROM_LOADED = "is_rom_loaded"
    LIST_ROMS = "list_roms"


_BUTTON_COMMANDS: Mapping[CommandName, Button] = MappingProxyType(
    {CommandName(button.command_name): button for button in Button}
)


@dataclass(frozen=True)
class TextResult:
    """Structured, non-image command output serialised as text."""

    payload: str

    @classmethod
    def from_json(cls, value: Any) -> "TextResult":
        return cls(payload=json.dumps(value))


CommandResult = Snapshot | TextResult


@dataclass(frozen=True)
class CommandContext:
    """Collaborators available to command handlers."""

    service: EmulatorService
    rom_library: RomLibrary


CommandHandler = Callable[[CommandContext, Mapping[str, Any]], CommandResult]


@dataclass(frozen=True)
class ParameterSpec:
    """Declared shape of a single command parameter."""

    name: str
    kind: type
    description: str
    required: bool = False
    default: Any = None
    minimum: int | None = None
    maximum: int | None = None
    aliases: tuple[str, ...] = ()

    def coerce(self, raw: Any) -> Any:
        if self.kind is int:
            # bool is an int subclass but never a frame count
            if isinstance(raw, bool) or not isinstance(raw, int):
                if isinstance(raw, float) and raw.is_integer():
                    raw = int(raw)
                else:
                    raise InvalidParameterError(self.name, "must be an integer")
            if self.minimum is not None and raw < self.minimum:
                raise InvalidParameterError(self.name, f"must be >= {self.minimum}")
            if self.maximum is not None and raw > self.maximum:
                raise InvalidParameterError(self.name, f"must be <= {self.maximum}")
            return raw
        if self.kind is str:
            if not isinstance(raw, str):
                raise InvalidParameterError(self.name, "must be a string")
            if not raw.strip():
                raise InvalidParameterError(self.name, "must not be empty")
            return raw
        raise TypeError(f"unsupported parameter kind: {self.kind!r}")

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "integer" if self.kind is int else "string",
            "description": self.description,
        }
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.default is not None:
            schema["default"] = self.default
        return schema


@dataclass(frozen=True)
class CommandSpec:
    """Registry entry: parameters, precondition and handler for one command."""

    name: CommandName
    description: str
    handler: CommandHandler
    parameters: tuple[ParameterSpec, ...] = ()
    requires_loaded: bool = True
    _lookup: Mapping[str, ParameterSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lookup: Dict[str, ParameterSpec] = {}
        for spec in self.parameters:
            for key in (spec.name, *spec.aliases):
                lookup[key] = spec
        object.__setattr__(self, "_lookup", MappingProxyType(lookup))

    def validate(self, params: Mapping[str, Any] | None) -> Dict[str, Any]:
        """Return parameters coerced to their declared types.

        Raises :class:`InvalidParameterError` naming the offending field for
        unknown keys, missing required values and out-of-range values.
        """

        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            raise InvalidParameterError("params", "must be an object")
        resolved: Dict[str, Any] = {}
        for key, raw in params.items():
            spec = self._lookup.get(key)
            if spec is None:
                raise InvalidParameterError(str(key), "is not accepted by this command")
            if spec.name in resolved:
                raise InvalidParameterError(spec.name, "given more than once")
            resolved[spec.name] = spec.coerce(raw)
        for spec in self.parameters:
            if spec.name in resolved:
                continue
            if spec.required:
                raise InvalidParameterError(spec.name, "is required")
            resolved[spec.name] = spec.default
        return resolved

    def descriptor(self) -> Dict[str, Any]:
        """Describe the command for ``tools/list`` style discovery."""

        return {
            "name": self.name.value,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": {
                    spec.name: spec.json_schema() for spec in self.parameters
                },
                "required": [spec.name for spec in self.parameters if spec.required],
            },
        }


# Handlers ---------------------------------------------------------------


def _press(context: CommandContext, params: Mapping[str, Any], button: Button) -> Snapshot:
    return context.service.press(button, params["duration_frames"])


def _wait_frames(context: CommandContext, params: Mapping[str, Any]) -> Snapshot:
    return context.service.wait_frames(params["duration_frames"])


def _load_rom(context: CommandContext, params: Mapping[str, Any]) -> Snapshot:
    return context.service.load(params["path"])


def _get_screen(context: CommandContext, params: Mapping[str, Any]) -> Snapshot:
    return context.service.advance_and_snapshot()


def _peek_screen(context: CommandContext, params: Mapping[str, Any]) -> Snapshot:
    return context.service.snapshot()


def _is_rom_loaded(context: CommandContext, params: Mapping[str, Any]) -> TextResult:
    return TextResult.from_json(context.service.status().as_dict())


def _list_roms(context: CommandContext, params: Mapping[str, Any]) -> TextResult:
    return TextResult.from_json(
        [entry.as_dict() for entry in context.rom_library.list_roms()]
    )


def _button_handler(button: Button) -> CommandHandler:
    def handler(context: CommandContext, params: Mapping[str, Any]) -> Snapshot:
        return _press(context, params, button)

    return handler


_HANDLERS: Mapping[CommandName, CommandHandler] = MappingProxyType(
    {
        **{name: _button_handler(button) for name, button in _BUTTON_COMMANDS.items()},
        CommandName.WAIT_FRAMES: _wait_frames,
        CommandName.LOAD_ROM: _load_rom,
        CommandName.GET_SCREEN: _get_screen,
        CommandName.PEEK_SCREEN: _peek_screen,
        CommandName.IS_ROM_LOADED: _is_rom_loaded,
        CommandName.LIST_ROMS: _list_roms,
    }
)


class CommandRegistry:
    """Resolve command names to :class:`CommandSpec` entries."""

    def __init__(
        self,
        *,
        max_duration_frames: int = DEFAULT_MAX_DURATION_FRAMES,
        handlers: Mapping[CommandName, CommandHandler] | None = None,
    ) -> None:
        self.max_duration_frames = max_duration_frames
        table = dict(_HANDLERS if handlers is None else handlers)
        missing = [name.value for name in CommandName if name not in table]
        if missing:
            raise ValueError(f"no handler registered for: {', '.join(missing)}")
        self._specs: Dict[CommandName, CommandSpec] = {
            spec.name: spec for spec in self._build_specs(table)
        }

    def resolve(self, name: object) -> CommandSpec:
        """Return the :class:`CommandSpec` for ``name`` or raise :class:`UnknownCommandError`."""

        if isinstance(name, CommandName):
            return self._specs[name]
        if not isinstance(name, str):
            raise UnknownCommandError(name)
        try:
            return self._specs[CommandName(name)]
        except ValueError as exc:
            raise UnknownCommandError(name) from exc

    def __contains__(self, name: object) -> bool:
        try:
            self.resolve(name)
        except UnknownCommandError:
            return False
        return True

    def __iter__(self) -> Iterator[CommandSpec]:
        return iter(self._specs.values())

    def names(self) -> Iterable[str]:
        return [name.value for name in self._specs]

    def descriptors(self) -> list[Dict[str, Any]]:
        return [spec.descriptor() for spec in self]

    def _duration_parameter(self, *, required: bool, description: str) -> ParameterSpec:
        return ParameterSpec(
            name="duration_frames",
            kind=int,
            description=description,
            required=required,
            default=None if required else 1,
            minimum=1,
            maximum=self.max_duration_frames,
        )

    def _build_specs(
        self, table: Mapping[CommandName, CommandHandler]
    ) -> Iterator[CommandSpec]:
        for name, button in _BUTTON_COMMANDS.items():
            yield CommandSpec(
                name=name,
                description=f"Press the {button.value} button on the GameBoy",
                handler=table[name],
                parameters=(
                    self._duration_parameter(
                        required=False,
                        description="Number of frames to hold the button",
                    ),
                ),
            )
        yield CommandSpec(
            name=CommandName.WAIT_FRAMES,
            description="Wait for a specified number of frames",
            handler=table[CommandName.WAIT_FRAMES],
            parameters=(
                self._duration_parameter(
                    required=True, description="Number of frames to wait"
                ),
            ),
        )
        yield CommandSpec(
            name=CommandName.LOAD_ROM,
            description="Load a GameBoy ROM file",
            handler=table[CommandName.LOAD_ROM],
            parameters=(
                ParameterSpec(
                    name="path",
                    kind=str,
                    description="Path to the ROM file",
                    required=True,
                    aliases=("romPath",),
                ),
            ),
            requires_loaded=False,
        )
        yield CommandSpec(
            name=CommandName.GET_SCREEN,
            description="Get the current GameBoy screen (advances one frame)",
            handler=table[CommandName.GET_SCREEN],
        )
        yield CommandSpec(
            name=CommandName.PEEK_SCREEN,
            description="Get the current GameBoy screen without advancing",
            handler=table[CommandName.PEEK_SCREEN],
        )
        yield CommandSpec(
            name=CommandName.IS_ROM_LOADED,
            description="Check if a ROM is currently loaded in the emulator",
            handler=table[CommandName.IS_ROM_LOADED],
            requires_loaded=False,
        )
        yield CommandSpec(
            name=CommandName.LIST_ROMS,
            description="List all available GameBoy ROM files",
            handler=table[CommandName.LIST_ROMS],
            requires_loaded=False,
        )


__all__ = [
    "CommandContext",
    "CommandHandler",
    "CommandName",
    "CommandRegistry",
    "CommandResult",
    "CommandSpec",
    "ParameterSpec",
    "TextResult",
]
