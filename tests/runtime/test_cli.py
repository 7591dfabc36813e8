"""Tests for argument parsing and startup of the bridge CLI."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterator

import pytest

from emubridge.config import BridgeConfig
from emubridge.runtime import cli
from emubridge.runtime.transports import encode_message


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in ("ROM_PATH", "ROMS_DIR", "HOST", "PORT", "SERVER_PORT",
                "EMUBRIDGE_LOG_FILE", "EMUBRIDGE_LOG_LEVEL", "EMUBRIDGE_MAX_DURATION_FRAMES"):
        monkeypatch.delenv(key, raising=False)
    yield
    logger = logging.getLogger("emubridge")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_parse_args_defaults() -> None:
    args = cli.parse_args([])

    assert args.mode == "stdio"
    assert args.web_ui is True
    assert args.rom is None


def test_parse_args_modes_are_exclusive() -> None:
    assert cli.parse_args(["--sse"]).mode == "sse"
    with pytest.raises(SystemExit):
        cli.parse_args(["--sse", "--stdio"])


def test_resolve_config_layers_flags_over_environment(tmp_path: Path) -> None:
    args = cli.parse_args(["--port", "4100", "--roms-dir", str(tmp_path), "--no-web-ui"])

    config = cli.resolve_config(args, environ={"PORT": "9000", "HOST": "0.0.0.0"})

    assert config.port == 4100
    assert config.host == "0.0.0.0"
    assert config.roms_dir == tmp_path
    assert args.web_ui is False


def test_build_bridge_honours_max_duration(engine, tmp_path: Path) -> None:
    config = BridgeConfig(roms_dir=tmp_path, max_duration_frames=12)

    bridge = cli.build_bridge(config, engine)

    assert bridge.dispatcher.registry.max_duration_frames == 12
    assert bridge.rom_library.root == tmp_path


def test_main_requires_rom_in_stdio_mode(engine, tmp_path: Path) -> None:
    log_file = tmp_path / "bridge.log"

    status = cli.main(["--stdio", "--log-file", str(log_file)], engine=engine)

    assert status == 1
    assert "A ROM path is required" in log_file.read_text(encoding="utf-8")
    assert engine.closed == 1


def test_main_exits_when_startup_rom_missing(engine, tmp_path: Path) -> None:
    status = cli.main(
        ["--rom", str(tmp_path / "missing.gb"), "--log-file", str(tmp_path / "b.log")],
        engine=engine,
    )

    assert status == 1
    assert engine.loaded == []


def test_main_rejects_invalid_configuration(tmp_path: Path) -> None:
    config_path = tmp_path / "bridge.toml"
    config_path.write_text("[bridge]\nport = -1\n", encoding="utf-8")

    assert cli.main(["--config", str(config_path)]) == 1


def test_main_rejects_unknown_engine(tmp_path: Path) -> None:
    config_path = tmp_path / "bridge.toml"
    config_path.write_text('[bridge]\nengine = "vba"\n', encoding="utf-8")

    status = cli.main(
        ["--config", str(config_path), "--log-file", str(tmp_path / "b.log")]
    )

    assert status == 1


def test_run_stdio_serves_protocol_without_web_ui(engine, rom_file: Path, tmp_path: Path) -> None:
    class _Reader:
        def __init__(self) -> None:
            self.lines = [encode_message({"tool": "get_screen"})]

        async def readline(self) -> bytes:
            return self.lines.pop(0) if self.lines else b""

    class _Writer:
        def __init__(self) -> None:
            self.buffer: list[bytes] = []

        def write(self, data: bytes) -> None:
            self.buffer.append(data)

        async def drain(self) -> None:
            return None

    config = BridgeConfig(rom_path=rom_file, roms_dir=tmp_path)
    bridge = cli.build_bridge(config, engine)
    bridge.service.load(rom_file)
    writer = _Writer()

    asyncio.run(cli.run_stdio(bridge, config, web_ui=False, reader=_Reader(), writer=writer))

    (reply,) = [json.loads(chunk) for chunk in writer.buffer]
    assert reply["content"][0]["type"] == "image"
    assert engine.step_count == 5 + 1


def test_main_rejects_unknown_log_level(engine, tmp_path: Path) -> None:
    status = cli.main(
        ["--no-web-ui", "--log-level", "LOUD", "--log-file", str(tmp_path / "b.log")],
        engine=engine,
    )

    assert status == 1
    assert engine.loaded == []
