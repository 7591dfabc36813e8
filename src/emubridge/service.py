"""Emulator control service owning the single emulator instance."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import AbstractSet, Callable, TypeVar

from .buttons import Button
from .engine import FrameEngine
from .errors import (
    EmulatorError,
    EngineFailure,
    InvalidArgumentError,
    NotFoundError,
    NotLoadedError,
)
from .log import VERBOSE
from .screen_codec import PngScreenCodec, ScreenCodec


logger = logging.getLogger(__name__)

# Frames advanced after a load so the first snapshot shows a rendered screen.
WARMUP_FRAMES = 5

_T = TypeVar("_T")


@dataclass(frozen=True)
class Snapshot:
    """Encoded still image of the engine's visible output."""

    encoding: str
    payload: bytes


@dataclass(frozen=True)
class RomStatus:
    """Whether a ROM is resident and which path it was loaded from."""

    loaded: bool
    image_path: str | None

    def as_dict(self) -> dict[str, object]:
        return {"loaded": self.loaded, "imagePath": self.image_path}


class EmulatorService:
    """Translate high-level intents into single-frame engine steps.

    Every public operation holds the service lock for its full frame loop, so a
    command's frames are never interleaved with another command's frames even
    when callers arrive from different threads.
    """

    def __init__(
        self,
        engine: FrameEngine,
        *,
        codec: ScreenCodec | None = None,
        warmup_frames: int = WARMUP_FRAMES,
    ) -> None:
        self._engine = engine
        self._codec = codec or PngScreenCodec()
        self._warmup_frames = warmup_frames
        self._lock = threading.RLock()
        self._loaded = False
        self._image_path: str | None = None
        logger.info("EmulatorService initialised")

    # State --------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def image_path(self) -> str | None:
        return self._image_path

    def status(self) -> RomStatus:
        """Return the current load status without touching the engine."""

        with self._lock:
            return RomStatus(loaded=self._loaded, image_path=self._image_path)

    # Operations ---------------------------------------------------------

    def load(self, path: str | Path) -> Snapshot:
        """Load the ROM at ``path``, run the warm-up frames and snapshot."""

        image_path = str(path)
        logger.info("Attempting to load ROM: %s", image_path)
        rom = self._read_image(image_path)
        with self._lock:
            try:
                self._engine.load(rom)
            except Exception as exc:
                # The resident ROM, if any, stays loaded.
                logger.error("Error loading ROM %s: %s", image_path, exc)
                raise EngineFailure(
                    f"Failed to load ROM: {image_path}. Reason: {exc}"
                ) from exc
            self._loaded = True
            self._image_path = image_path
            logger.info("ROM loaded successfully: %s", Path(image_path).name)
            self._advance(self._warmup_frames)
            logger.log(VERBOSE, "Advanced %d warm-up frames", self._warmup_frames)
            return self._capture()

    def press(self, button: Button, hold_frames: int = 1) -> Snapshot:
        """Assert ``button`` for one frame, then free-run ``hold_frames - 1``.

        The input is injected on the first frame only; the remaining frames run
        with no buttons held.
        """

        self._require_positive("hold_frames", hold_frames)
        with self._lock:
            self._require_loaded("press button")
            logger.debug("Pressing button %s for %d frame(s)", button.value, hold_frames)
            self._guard(lambda: self._engine.step(frozenset({button})))
            self._advance(hold_frames - 1)
            return self._capture()

    def wait_frames(self, frames: int) -> Snapshot:
        """Advance ``frames`` frames with no input and snapshot."""

        self._require_positive("duration_frames", frames)
        with self._lock:
            self._require_loaded("wait frames")
            logger.debug("Waiting for %d frames", frames)
            self._advance(frames)
            return self._capture()

    def snapshot(self) -> Snapshot:
        """Return the current screen without advancing the engine."""

        with self._lock:
            self._require_loaded("get screen")
            return self._capture()

    def advance_and_snapshot(self) -> Snapshot:
        """Advance exactly one frame and return the resulting screen."""

        with self._lock:
            self._require_loaded("advance frame")
            self._advance(1)
            return self._capture()

    def close(self) -> None:
        with self._lock:
            self._engine.close()
            self._loaded = False
            self._image_path = None

    # Helpers ------------------------------------------------------------

    @staticmethod
    def _read_image(path: str) -> bytes:
        candidate = Path(path)
        if not candidate.is_file():
            logger.error("ROM file not found: %s", path)
            raise NotFoundError(f"ROM file not found: {path}")
        try:
            return candidate.read_bytes()
        except OSError as exc:
            logger.error("ROM file unreadable: %s (%s)", path, exc)
            raise NotFoundError(f"ROM file not readable: {path}") from exc

    @staticmethod
    def _require_positive(name: str, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidArgumentError(name, "must be a positive integer")

    def _require_loaded(self, action: str) -> None:
        if not self._loaded:
            logger.warning("Attempted to %s with no ROM loaded", action)
            raise NotLoadedError()

    def _advance(self, frames: int, buttons: AbstractSet[Button] = frozenset()) -> None:
        for _ in range(frames):
            self._guard(lambda: self._engine.step(buttons))

    def _capture(self) -> Snapshot:
        frame = self._guard(self._engine.frame_buffer)
        payload = self._guard(lambda: self._codec.encode(frame))
        logger.log(
            VERBOSE,
            "Screen captured (%s, %d bytes)",
            self._codec.mime_type,
            len(payload),
        )
        return Snapshot(encoding=self._codec.mime_type, payload=payload)

    @staticmethod
    def _guard(call: Callable[[], _T]) -> _T:
        try:
            return call()
        except EmulatorError:
            raise
        except Exception as exc:
            logger.error("Engine fault: %s", exc)
            raise EngineFailure(f"engine fault: {exc}") from exc


__all__ = ["EmulatorService", "RomStatus", "Snapshot", "WARMUP_FRAMES"]
