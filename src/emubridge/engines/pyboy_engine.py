"""PyBoy-backed :class:`~emubridge.engine.FrameEngine`."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import AbstractSet

import numpy as np
from pyboy import PyBoy

from ..buttons import Button
from ..engine import normalise_frame_buffer


logger = logging.getLogger(__name__)


class PyBoyEngine:
    """Headless PyBoy instance stepped one frame at a time."""

    def __init__(self, *, window: str = "null") -> None:
        self._window = window
        self._pyboy: PyBoy | None = None
        self._rom_file: Path | None = None

    def load(self, rom: bytes) -> None:
        # PyBoy opens ROMs by path, so the image is staged on disk first.
        handle, name = tempfile.mkstemp(suffix=".gb", prefix="emubridge-")
        with os.fdopen(handle, "wb") as stream:
            stream.write(rom)
        try:
            pyboy = PyBoy(name, window=self._window)
        except Exception:
            Path(name).unlink(missing_ok=True)
            raise
        # Only replace the running instance once the new one has started.
        self.close()
        self._rom_file = Path(name)
        self._pyboy = pyboy
        logger.debug("PyBoy started with %d byte image", len(rom))

    def step(self, buttons: AbstractSet[Button] = frozenset()) -> None:
        pyboy = self._require()
        names = [button.value.lower() for button in buttons]
        for name in names:
            pyboy.button_press(name)
        pyboy.tick(1, True)
        for name in names:
            pyboy.button_release(name)

    def frame_buffer(self) -> np.ndarray:
        return normalise_frame_buffer(self._require().screen.ndarray)

    def close(self) -> None:
        if self._pyboy is not None:
            self._pyboy.stop(save=False)
            self._pyboy = None
        if self._rom_file is not None:
            self._rom_file.unlink(missing_ok=True)
            self._rom_file = None

    def _require(self) -> PyBoy:
        if self._pyboy is None:
            raise RuntimeError("PyBoy engine has no ROM loaded")
        return self._pyboy


__all__ = ["PyBoyEngine"]
