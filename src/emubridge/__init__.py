"""Remote command bridge for a single frame-stepped Game Boy emulator."""

from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
