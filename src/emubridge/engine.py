"""Capability interface for the opaque emulation engine."""

from __future__ import annotations

from typing import AbstractSet, Protocol

import numpy as np

from .buttons import Button


SCREEN_WIDTH = 160
SCREEN_HEIGHT = 144


class FrameEngine(Protocol):
    """Protocol implemented by emulation engines driven by :class:`EmulatorService`.

    Engines own every register, memory bank and timer. The service only ever
    hands them a ROM image, asks for single frame steps with an input mask, and
    reads back the visible frame buffer.
    """

    def load(self, rom: bytes) -> None:
        """Replace the resident program image with ``rom`` and reset.

        If loading raises, the previously resident image keeps running.
        """

    def step(self, buttons: AbstractSet[Button] = frozenset()) -> None:
        """Advance exactly one frame with ``buttons`` asserted for that frame."""

    def frame_buffer(self) -> np.ndarray:
        """Return the current RGBA frame as a ``(height, width, 4)`` array."""

    def close(self) -> None:
        """Release engine resources."""


def normalise_frame_buffer(
    buffer: object, *, width: int = SCREEN_WIDTH, height: int = SCREEN_HEIGHT
) -> np.ndarray:
    """Coerce an engine buffer into a contiguous ``uint8`` RGBA array.

    Engines differ in what they expose: some return a flat RGBA byte list,
    others an ``(h, w, 3)`` RGB view. Both are accepted.
    """

    array = np.asarray(buffer, dtype=np.uint8)
    if array.ndim == 1:
        if array.size != width * height * 4:
            raise ValueError(
                f"flat frame buffer has {array.size} bytes, expected {width * height * 4}"
            )
        array = array.reshape(height, width, 4)
    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"unsupported frame buffer shape: {array.shape}")
    if array.shape[2] == 3:
        alpha = np.full(array.shape[:2] + (1,), 0xFF, dtype=np.uint8)
        array = np.concatenate([array, alpha], axis=2)
    return np.ascontiguousarray(array)


__all__ = [
    "FrameEngine",
    "SCREEN_HEIGHT",
    "SCREEN_WIDTH",
    "normalise_frame_buffer",
]
