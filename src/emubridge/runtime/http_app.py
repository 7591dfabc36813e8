"""FastAPI application exposing the dispatcher over HTTP and SSE."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Mapping

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
    StreamingResponse,
)

from .. import __version__
from ..dispatch.dispatcher import Command, CommandDispatcher
from ..errors import EmulatorError, InvalidParameterError
from ..rom_library import RomLibrary, RomLibraryError
from .pages import render_live_view, render_rom_selection
from .transports import MESSAGES_PATH, MultiplexedTransport


logger = logging.getLogger(__name__)


def _error_response(error: EmulatorError) -> JSONResponse:
    return JSONResponse(error.to_payload(), status_code=error.status)


async def _read_json_object(request: Request) -> Mapping[str, Any]:
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidParameterError("body", f"request body is not valid JSON: {exc}") from exc
    if not isinstance(body, Mapping):
        raise InvalidParameterError("body", "request body must be a JSON object")
    return body


def create_app(
    dispatcher: CommandDispatcher,
    rom_library: RomLibrary,
    multiplexed: MultiplexedTransport | None = None,
) -> FastAPI:
    """Build the HTTP front end.

    The ``/mcp`` and ``/messages`` routes exist only when ``multiplexed`` is
    given; the tool, screen and ROM routes are always present.
    """

    service = dispatcher.service

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if multiplexed is not None:
            multiplexed.registry.close_all()

    app = FastAPI(title="emubridge", version=__version__, lifespan=lifespan)

    @app.exception_handler(EmulatorError)
    async def emulator_error_handler(request: Request, exc: EmulatorError) -> JSONResponse:
        return _error_response(exc)

    # Command and screen endpoints -----------------------------------------

    @app.post("/api/tool")
    async def api_tool(request: Request) -> JSONResponse:
        envelope = await _read_json_object(request)
        logger.info("API /api/tool called: %s", envelope.get("tool"))
        response = dispatcher.dispatch(Command.from_envelope(envelope))
        return JSONResponse(response.body, status_code=response.status)

    @app.get("/screen")
    async def screen() -> Response:
        snapshot = service.snapshot()
        return Response(content=snapshot.payload, media_type=snapshot.encoding)

    @app.get("/api/advance_and_get_screen")
    async def advance_and_get_screen() -> Response:
        snapshot = service.advance_and_snapshot()
        return Response(content=snapshot.payload, media_type=snapshot.encoding)

    @app.get("/api/status")
    async def api_status() -> JSONResponse:
        return JSONResponse({"connected": True, **service.status().as_dict()})

    @app.get("/api/roms")
    async def api_roms() -> JSONResponse:
        return JSONResponse([entry.as_dict() for entry in rom_library.list_roms()])

    # Pages ----------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def rom_selection() -> HTMLResponse:
        return HTMLResponse(render_rom_selection(rom_library.list_roms()))

    @app.post("/upload")
    async def upload(rom: UploadFile = File(...)) -> Response:
        data = await rom.read()
        try:
            rom_library.save_upload(rom.filename or "", data)
        except RomLibraryError as exc:
            logger.warning("Rejected ROM upload %r: %s", rom.filename, exc)
            return _error_response(InvalidParameterError("rom", str(exc)))
        return RedirectResponse("/", status_code=303)

    @app.get("/gameboy")
    async def gameboy(rom: str | None = Query(default=None)) -> RedirectResponse:
        if not rom or not Path(rom).is_file():
            return RedirectResponse("/", status_code=302)
        try:
            service.load(rom)
        except EmulatorError as exc:
            logger.error("Error loading ROM %s: %s", rom, exc.message)
            return RedirectResponse("/", status_code=302)
        return RedirectResponse("/emulator", status_code=302)

    @app.get("/emulator", response_class=HTMLResponse)
    async def emulator_page() -> HTMLResponse:
        return HTMLResponse(render_live_view(service.image_path))

    if multiplexed is not None:
        _mount_sse_routes(app, multiplexed)

    return app


def _mount_sse_routes(app: FastAPI, multiplexed: MultiplexedTransport) -> None:
    @app.get("/mcp")
    async def open_stream() -> StreamingResponse:
        return StreamingResponse(
            multiplexed.stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post(MESSAGES_PATH)
    async def post_message(
        request: Request, session_id: str | None = Query(default=None, alias="sessionId")
    ) -> Response:
        if not session_id:
            return _error_response(
                InvalidParameterError("sessionId", "sessionId query parameter is required")
            )
        body = await request.body()
        multiplexed.post(session_id, body)
        return PlainTextResponse("Accepted", status_code=202)


__all__ = ["create_app"]
