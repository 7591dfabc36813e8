"""Pytest configuration: put ``src/`` on the path and provide engine doubles."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import AbstractSet

_SRC = Path(__file__).resolve().parents[1] / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from emubridge.buttons import Button  # noqa: E402
from emubridge.dispatch import CommandDispatcher, WireProtocol  # noqa: E402
from emubridge.engine import SCREEN_HEIGHT, SCREEN_WIDTH  # noqa: E402
from emubridge.rom_library import RomLibrary  # noqa: E402
from emubridge.service import EmulatorService  # noqa: E402


class CountingEngine:
    """Deterministic engine that records every step and its input mask.

    The frame buffer's pixel value tracks the step count, so two snapshots
    differ exactly when a frame was advanced between them.
    """

    def __init__(self, *, fail_on_load: bool = False) -> None:
        self.fail_on_load = fail_on_load
        self.loaded: list[bytes] = []
        self.steps: list[frozenset[Button]] = []
        self.fail_on_step: Exception | None = None
        self.closed = 0

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def load(self, rom: bytes) -> None:
        if self.fail_on_load:
            raise RuntimeError("corrupt cartridge header")
        self.loaded.append(rom)
        self.steps.clear()

    def step(self, buttons: AbstractSet[Button] = frozenset()) -> None:
        if self.fail_on_step is not None:
            raise self.fail_on_step
        self.steps.append(frozenset(buttons))

    def frame_buffer(self) -> np.ndarray:
        frame = np.full((SCREEN_HEIGHT, SCREEN_WIDTH, 4), self.step_count % 256, dtype=np.uint8)
        frame[..., 3] = 255
        return frame

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def engine() -> CountingEngine:
    return CountingEngine()


@pytest.fixture
def service(engine: CountingEngine) -> EmulatorService:
    return EmulatorService(engine)


@pytest.fixture
def rom_file(tmp_path: Path) -> Path:
    path = tmp_path / "tetris.gb"
    path.write_bytes(b"\x00" * 0x150)
    return path


@pytest.fixture
def loaded_service(service: EmulatorService, rom_file: Path) -> EmulatorService:
    service.load(rom_file)
    return service


@pytest.fixture
def rom_library(tmp_path: Path) -> RomLibrary:
    return RomLibrary(tmp_path / "roms")


@pytest.fixture
def dispatcher(service: EmulatorService, rom_library: RomLibrary) -> CommandDispatcher:
    return CommandDispatcher(service, rom_library)


@pytest.fixture
def protocol(dispatcher: CommandDispatcher) -> WireProtocol:
    return WireProtocol(dispatcher)
