"""Physical joypad inputs understood by the emulator."""

from __future__ import annotations

from enum import Enum


class Button(Enum):
    """The eight Game Boy joypad inputs."""

    UP = "UP"
    DOWN = "DOWN"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    A = "A"
    B = "B"
    START = "START"
    SELECT = "SELECT"

    @property
    def command_name(self) -> str:
        """Return the ``press_<button>`` command exposing this input."""

        return f"press_{self.value.lower()}"

    @classmethod
    def from_name(cls, value: str) -> "Button":
        key = value.strip().upper()
        try:
            return cls[key]
        except KeyError as exc:
            raise ValueError(f"unknown button: {value!r}") from exc


__all__ = ["Button"]
