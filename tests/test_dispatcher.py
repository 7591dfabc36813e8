from __future__ import annotations

import base64
import json
from pathlib import Path

import pytest

from emubridge.dispatch import (
    Command,
    CommandDispatcher,
    CommandName,
    CommandRegistry,
    TextResult,
    render_result,
)
from emubridge.errors import InvalidParameterError, NotLoadedError, UnknownCommandError
from emubridge.service import WARMUP_FRAMES, Snapshot


def _text_payload(body: dict) -> object:
    (item,) = body["content"]
    assert item["type"] == "text"
    return json.loads(item["payload"])


def test_registry_covers_every_command_name() -> None:
    registry = CommandRegistry()

    assert sorted(registry.names()) == sorted(name.value for name in CommandName)
    assert "press_a" in registry
    assert "press_x" not in registry


def test_registry_rejects_incomplete_handler_table() -> None:
    with pytest.raises(ValueError, match="no handler registered"):
        CommandRegistry(handlers={})


def test_registry_resolve_unknown_name() -> None:
    with pytest.raises(UnknownCommandError, match="Unknown tool: fly"):
        CommandRegistry().resolve("fly")


def test_descriptors_expose_required_parameters() -> None:
    descriptors = {entry["name"]: entry for entry in CommandRegistry().descriptors()}

    assert descriptors["wait_frames"]["inputSchema"]["required"] == ["duration_frames"]
    assert descriptors["press_a"]["inputSchema"]["required"] == []
    assert descriptors["press_a"]["inputSchema"]["properties"]["duration_frames"]["default"] == 1
    assert descriptors["load_rom"]["inputSchema"]["required"] == ["path"]


def test_validate_accepts_rom_path_alias() -> None:
    spec = CommandRegistry().resolve("load_rom")

    assert spec.validate({"romPath": "roms/a.gb"}) == {"path": "roms/a.gb"}
    with pytest.raises(InvalidParameterError) as excinfo:
        spec.validate({"romPath": "a.gb", "path": "b.gb"})
    assert excinfo.value.field == "path"


@pytest.mark.parametrize(
    ("params", "field"),
    [
        ({"duration_frames": 0}, "duration_frames"),
        ({"duration_frames": "5"}, "duration_frames"),
        ({"duration_frames": False}, "duration_frames"),
        ({"duration_frames": 3601}, "duration_frames"),
        ({"frames": 2}, "frames"),
        ({}, "duration_frames"),
    ],
)
def test_wait_frames_parameter_validation(params, field) -> None:
    spec = CommandRegistry().resolve("wait_frames")

    with pytest.raises(InvalidParameterError) as excinfo:
        spec.validate(params)

    assert excinfo.value.field == field


def test_max_duration_frames_is_configurable() -> None:
    spec = CommandRegistry(max_duration_frames=10).resolve("press_a")

    assert spec.validate({"duration_frames": 10.0}) == {"duration_frames": 10}
    with pytest.raises(InvalidParameterError):
        spec.validate({"duration_frames": 11})


def test_render_result_shapes() -> None:
    image = render_result(Snapshot(encoding="image/png", payload=b"png"))
    text = render_result(TextResult.from_json({"ok": True}))

    assert image == {
        "content": [
            {"type": "image", "encoding": "image/png", "payload": base64.b64encode(b"png").decode()}
        ]
    }
    assert text == {"content": [{"type": "text", "payload": '{"ok": true}'}]}


def test_unknown_command_returns_error_envelope(dispatcher: CommandDispatcher) -> None:
    response = dispatcher.dispatch(Command(name="jump"))

    assert response.status == 400
    assert response.body == {"error": "Unknown tool: jump", "code": "unknown_command"}


def test_missing_tool_name(dispatcher: CommandDispatcher) -> None:
    response = dispatcher.dispatch(Command.from_envelope({"params": {}}))

    assert response.status == 400
    assert response.body["error"] == "Tool name is required"


def test_invalid_parameter_is_named_and_engine_untouched(dispatcher, engine, rom_file) -> None:
    dispatcher.service.load(rom_file)
    before = engine.step_count

    response = dispatcher.dispatch(Command("wait_frames", {"duration_frames": 0}))

    assert response.status == 400
    assert response.body["code"] == "invalid_parameter"
    assert "duration_frames" in response.body["error"]
    assert engine.step_count == before


def test_commands_require_loaded_rom(dispatcher, engine) -> None:
    for name in ("press_a", "get_screen", "peek_screen"):
        response = dispatcher.dispatch(Command(name))
        assert response.status == 400
        assert response.body == {"error": "No ROM loaded", "code": "not_loaded"}
    response = dispatcher.dispatch(Command("wait_frames", {"duration_frames": 1}))
    assert response.body["code"] == "not_loaded"
    assert engine.step_count == 0


def test_execute_raises_instead_of_rendering(dispatcher) -> None:
    with pytest.raises(NotLoadedError):
        dispatcher.execute(Command("peek_screen"))


def test_load_rom_is_exempt_from_precondition(dispatcher, engine, rom_file: Path) -> None:
    response = dispatcher.dispatch(Command("load_rom", {"path": str(rom_file)}))

    assert response.ok
    (item,) = response.body["content"]
    assert item["type"] == "image"
    assert item["encoding"] == "image/png"
    assert engine.step_count == WARMUP_FRAMES


def test_load_rom_missing_file_is_not_found(dispatcher, tmp_path: Path) -> None:
    response = dispatcher.dispatch(Command("load_rom", {"path": str(tmp_path / "nope.gb")}))

    assert response.status == 404
    assert response.body["code"] == "not_found"


def test_is_rom_loaded_reflects_load(dispatcher, rom_file: Path) -> None:
    before = dispatcher.dispatch(Command("is_rom_loaded"))
    dispatcher.dispatch(Command("load_rom", {"path": str(rom_file)}))
    after = dispatcher.dispatch(Command("is_rom_loaded"))

    assert _text_payload(before.body) == {"loaded": False, "imagePath": None}
    assert _text_payload(after.body) == {"loaded": True, "imagePath": str(rom_file)}


def test_list_roms_on_empty_directory(dispatcher) -> None:
    response = dispatcher.dispatch(Command("list_roms"))

    assert response.ok
    assert _text_payload(response.body) == []


def test_list_roms_returns_sorted_entries(dispatcher, rom_library) -> None:
    root = rom_library.ensure_root()
    for name in ("zelda.gb", "notes.txt", "alpha.gbc"):
        (root / name).write_bytes(b"\x00")

    response = dispatcher.dispatch(Command("list_roms"))

    assert [entry["name"] for entry in _text_payload(response.body)] == ["alpha.gbc", "zelda.gb"]


def test_get_screen_advances_and_peek_does_not(dispatcher, engine, rom_file: Path) -> None:
    dispatcher.dispatch(Command("load_rom", {"path": str(rom_file)}))
    before = engine.step_count

    dispatcher.dispatch(Command("peek_screen"))
    assert engine.step_count == before
    dispatcher.dispatch(Command("get_screen"))
    assert engine.step_count == before + 1


def test_press_command_uses_duration(dispatcher, engine, rom_file: Path) -> None:
    dispatcher.dispatch(Command("load_rom", {"path": str(rom_file)}))
    engine.steps.clear()

    response = dispatcher.dispatch(Command("press_left", {"duration_frames": 3}))

    assert response.ok
    assert engine.step_count == 3


def test_unexpected_handler_failure_is_wrapped(service, rom_library) -> None:
    def _explode(context, params):
        raise KeyError("boom")

    handlers = {name: _explode for name in CommandName}
    dispatcher = CommandDispatcher(service, rom_library, CommandRegistry(handlers=handlers))

    response = dispatcher.dispatch(Command("list_roms"))

    assert response.status == 500
    assert response.body["code"] == "engine_failure"
    assert response.body["error"].startswith("Failed to call tool:")
