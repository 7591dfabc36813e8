from __future__ import annotations

import json
from pathlib import Path

from emubridge.dispatch import WireProtocol
from emubridge.dispatch.protocol import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    SERVER_ERROR,
)


def _rpc(method: str, params: dict | None = None, request_id: object = 1) -> dict:
    message: dict = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def test_plain_envelope_success_passes_body_through(protocol: WireProtocol) -> None:
    reply = protocol.handle({"tool": "is_rom_loaded", "params": {}})

    assert reply is not None
    (item,) = reply["content"]
    assert json.loads(item["payload"]) == {"loaded": False, "imagePath": None}


def test_plain_envelope_error_carries_status(protocol: WireProtocol) -> None:
    reply = protocol.handle({"tool": "press_a"})

    assert reply == {"status": 400, "error": "No ROM loaded", "code": "not_loaded"}


def test_malformed_json_yields_parse_error(protocol: WireProtocol) -> None:
    reply = protocol.handle_text(b"{not json")

    assert reply is not None
    assert reply["id"] is None
    assert reply["error"]["code"] == PARSE_ERROR


def test_non_object_message_is_invalid(protocol: WireProtocol) -> None:
    reply = protocol.handle_text("[1, 2]")

    assert reply is not None
    assert reply["error"]["message"].startswith("Invalid request")


def test_initialize_reports_server_info(protocol: WireProtocol) -> None:
    reply = protocol.handle(_rpc("initialize", {"protocolVersion": PROTOCOL_VERSION}))

    assert reply is not None
    result = reply["result"]
    assert result["protocolVersion"] == PROTOCOL_VERSION
    assert result["serverInfo"]["name"] == "emubridge"
    assert "tools" in result["capabilities"]


def test_ping_and_notifications(protocol: WireProtocol) -> None:
    assert protocol.handle(_rpc("ping", request_id="abc")) == {
        "jsonrpc": "2.0",
        "id": "abc",
        "result": {},
    }
    assert protocol.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None


def test_notification_for_tools_call_still_runs(protocol: WireProtocol, engine, rom_file: Path) -> None:
    message = {
        "jsonrpc": "2.0",
        "method": "tools/call",
        "params": {"name": "load_rom", "arguments": {"path": str(rom_file)}},
    }

    assert protocol.handle(message) is None
    assert engine.loaded


def test_tools_list_matches_registry(protocol: WireProtocol) -> None:
    reply = protocol.handle(_rpc("tools/list"))

    assert reply is not None
    names = {tool["name"] for tool in reply["result"]["tools"]}
    assert {"press_a", "wait_frames", "load_rom", "get_screen", "list_roms"} <= names


def test_tools_call_success(protocol: WireProtocol, rom_file: Path) -> None:
    reply = protocol.handle(
        _rpc("tools/call", {"name": "load_rom", "arguments": {"romPath": str(rom_file)}}, 7)
    )

    assert reply is not None
    assert reply["id"] == 7
    (item,) = reply["result"]["content"]
    assert item["type"] == "image"


def test_tools_call_error_mapping(protocol: WireProtocol, rom_file: Path) -> None:
    unknown = protocol.handle(_rpc("tools/call", {"name": "fly"}))
    not_loaded = protocol.handle(_rpc("tools/call", {"name": "get_screen"}))
    protocol.handle(_rpc("tools/call", {"name": "load_rom", "arguments": {"path": str(rom_file)}}))
    invalid = protocol.handle(
        _rpc("tools/call", {"name": "wait_frames", "arguments": {"duration_frames": -2}})
    )

    assert unknown["error"]["code"] == INVALID_PARAMS
    assert unknown["error"]["data"] == {"status": 400, "code": "unknown_command"}
    assert not_loaded["error"]["code"] == SERVER_ERROR
    assert not_loaded["error"]["data"]["code"] == "not_loaded"
    assert invalid["error"]["code"] == INVALID_PARAMS
    assert "duration_frames" in invalid["error"]["message"]


def test_unknown_method(protocol: WireProtocol) -> None:
    reply = protocol.handle(_rpc("resources/list"))

    assert reply["error"]["code"] == METHOD_NOT_FOUND


def test_notification_method_with_id_gets_an_error_reply(protocol: WireProtocol) -> None:
    reply = protocol.handle(_rpc("notifications/initialized", request_id=4))

    assert reply is not None
    assert reply["id"] == 4
    assert reply["error"]["code"] == METHOD_NOT_FOUND
