"""Command-line entry point for the emulator bridge."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

import uvicorn

from ..config import BridgeConfig, ConfigError, load_bridge_config
from ..dispatch.dispatcher import CommandDispatcher
from ..dispatch.protocol import WireProtocol
from ..dispatch.registry import CommandRegistry
from ..engine import FrameEngine
from ..engines import resolve_engine_factory
from ..errors import EmulatorError
from ..log import configure_logging
from ..rom_library import RomLibrary
from ..service import EmulatorService
from .http_app import create_app
from .sessions import SessionRegistry
from .transports import (
    LineReader,
    LineWriter,
    MultiplexedTransport,
    StdioTransport,
    open_stdio_streams,
)


logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed arguments for the bridge CLI."""

    parser = argparse.ArgumentParser(description=__doc__)
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--stdio",
        dest="mode",
        action="store_const",
        const="stdio",
        help="Serve one sequential channel over stdin/stdout (default)",
    )
    mode_group.add_argument(
        "--sse",
        dest="mode",
        action="store_const",
        const="sse",
        help="Serve multiplexed sessions over HTTP Server-Sent Events",
    )
    parser.set_defaults(mode="stdio")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a TOML file with a [bridge] table",
    )
    parser.add_argument("--rom", type=Path, default=None, help="ROM to load at startup")
    parser.add_argument(
        "--roms-dir",
        type=Path,
        default=None,
        help="Directory listed by list_roms and used for uploads",
    )
    parser.add_argument("--host", default=None, help="HTTP bind address")
    parser.add_argument("--port", type=int, default=None, help="HTTP port")
    parser.add_argument("--log-file", type=Path, default=None, help="Log file path")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level name (VERBOSE, DEBUG, INFO, WARNING, ERROR)",
    )
    ui_group = parser.add_mutually_exclusive_group()
    ui_group.add_argument(
        "--web-ui",
        dest="web_ui",
        action="store_true",
        help="In stdio mode, also serve the HTTP live view",
    )
    ui_group.add_argument(
        "--no-web-ui",
        dest="web_ui",
        action="store_false",
        help="In stdio mode, serve the protocol channel only",
    )
    parser.set_defaults(web_ui=True)
    return parser.parse_args(argv)


def resolve_config(
    args: argparse.Namespace, environ: Mapping[str, str] | None = None
) -> BridgeConfig:
    """Layer CLI flags over the file and environment configuration."""

    config = load_bridge_config(args.config, environ=environ)
    return config.with_overrides(
        rom_path=args.rom,
        roms_dir=args.roms_dir,
        host=args.host,
        port=args.port,
        log_file=args.log_file,
        log_level=args.log_level,
    )


@dataclass
class Bridge:
    """The single service plus everything the transports share."""

    service: EmulatorService
    rom_library: RomLibrary
    dispatcher: CommandDispatcher
    protocol: WireProtocol

    def close(self) -> None:
        self.service.close()


def build_bridge(config: BridgeConfig, engine: FrameEngine | None = None) -> Bridge:
    """Wire the engine, service, dispatcher and protocol together."""

    if engine is None:
        engine = resolve_engine_factory(config.engine)()
    service = EmulatorService(engine)
    rom_library = RomLibrary(config.roms_dir)
    registry = CommandRegistry(max_duration_frames=config.max_duration_frames)
    dispatcher = CommandDispatcher(service, rom_library, registry)
    return Bridge(
        service=service,
        rom_library=rom_library,
        dispatcher=dispatcher,
        protocol=WireProtocol(dispatcher),
    )


def _http_server(app: object, config: BridgeConfig, *, sse: bool) -> uvicorn.Server:
    # Leave logging to the bridge; uvicorn's access log would write to stdout.
    server_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.resolve_port(sse=sse),
        log_config=None,
        access_log=False,
    )
    return uvicorn.Server(server_config)


async def run_stdio(
    bridge: Bridge,
    config: BridgeConfig,
    *,
    web_ui: bool = True,
    reader: LineReader | None = None,
    writer: LineWriter | None = None,
) -> None:
    """Serve the sequential channel until EOF, optionally with the live view."""

    if reader is None or writer is None:
        reader, writer = await open_stdio_streams()
    server_task: asyncio.Task[None] | None = None
    server: uvicorn.Server | None = None
    if web_ui:
        app = create_app(bridge.dispatcher, bridge.rom_library)
        server = _http_server(app, config, sse=False)
        server_task = asyncio.create_task(server.serve())
        logger.info(
            "Web UI available at http://%s:%d", config.host, config.resolve_port(sse=False)
        )
    try:
        await StdioTransport(bridge.protocol, reader, writer).serve()
    finally:
        if server is not None and server_task is not None:
            server.should_exit = True
            with contextlib.suppress(asyncio.CancelledError):
                await server_task


async def run_sse(bridge: Bridge, config: BridgeConfig) -> None:
    """Serve multiplexed SSE sessions until the HTTP server stops."""

    multiplexed = MultiplexedTransport(bridge.protocol, SessionRegistry())
    app = create_app(bridge.dispatcher, bridge.rom_library, multiplexed)
    server = _http_server(app, config, sse=True)
    logger.info(
        "GameBoy bridge listening on http://%s:%d/mcp",
        config.host,
        config.resolve_port(sse=True),
    )
    try:
        await server.serve()
    finally:
        multiplexed.registry.close_all()


def _load_startup_rom(bridge: Bridge, rom_path: Path | None, *, required: bool) -> bool:
    if rom_path is None:
        if required:
            logger.error("A ROM path is required in stdio mode (set ROM_PATH or --rom)")
            return False
        return True
    try:
        bridge.service.load(rom_path)
    except EmulatorError as exc:
        logger.error("Failed to load startup ROM: %s", exc.message)
        return False
    return True


def main(argv: Sequence[str] | None = None, *, engine: FrameEngine | None = None) -> int:
    """Entry point for the bridge CLI."""

    args = parse_args(argv)
    try:
        config = resolve_config(args)
    except ConfigError as exc:
        configure_logging()
        logger.error("Invalid configuration: %s", exc)
        return 1
    configure_logging(level=config.log_level, log_file=config.log_file)

    try:
        bridge = build_bridge(config, engine)
    except (ImportError, ValueError) as exc:
        logger.error("Unable to start engine %r: %s", config.engine, exc)
        return 1

    try:
        sse = args.mode == "sse"
        if not _load_startup_rom(bridge, config.rom_path, required=not sse):
            return 1
        if sse:
            asyncio.run(run_sse(bridge, config))
        else:
            asyncio.run(run_stdio(bridge, config, web_ui=args.web_ui))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        bridge.close()
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via python -m
    raise SystemExit(main())


__all__ = [
    "Bridge",
    "build_bridge",
    "main",
    "parse_args",
    "resolve_config",
    "run_sse",
    "run_stdio",
]
