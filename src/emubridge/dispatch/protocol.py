"""Wire protocol shared by the stdio and SSE transports.

A message is either a plain ``{"tool": ..., "params": ...}`` envelope or a
JSON-RPC 2.0 request. JSON-RPC callers may discover commands with
``tools/list`` and run them with ``tools/call``; both forms end up in the same
:class:`CommandDispatcher`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping

from .. import __version__
from .dispatcher import Command, CommandDispatcher, DispatchResponse


logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "emubridge"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000

_RPC_CODES: Mapping[str, int] = {
    "invalid_parameter": INVALID_PARAMS,
    "unknown_command": INVALID_PARAMS,
}


def _rpc_error(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def _rpc_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


class WireProtocol:
    """Decode transport messages and encode dispatcher replies."""

    def __init__(self, dispatcher: CommandDispatcher) -> None:
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    def handle_text(self, text: str | bytes) -> Dict[str, Any] | None:
        """Parse one serialised message and return the reply, if any."""

        try:
            message = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Discarding malformed message: %s", exc)
            return self.parse_error(str(exc))
        return self.handle(message)

    @staticmethod
    def parse_error(detail: str) -> Dict[str, Any]:
        """Reply sent for input that cannot be decoded into a message."""

        return _rpc_error(None, PARSE_ERROR, f"Parse error: {detail}")

    def handle(self, message: Any) -> Dict[str, Any] | None:
        """Handle a decoded message; notifications return ``None``."""

        if not isinstance(message, Mapping):
            return _rpc_error(None, INVALID_REQUEST, "Invalid request: expected an object")
        if "jsonrpc" in message:
            return self._handle_rpc(message)
        response = self._dispatcher.dispatch(Command.from_envelope(message))
        return self.envelope_reply(response)

    @staticmethod
    def envelope_reply(response: DispatchResponse) -> Dict[str, Any]:
        if response.ok:
            return response.body
        return {"status": response.status, **response.body}

    # JSON-RPC -----------------------------------------------------------

    def _handle_rpc(self, message: Mapping[str, Any]) -> Dict[str, Any] | None:
        is_notification = "id" not in message
        request_id = message.get("id")
        method = message.get("method")
        params = message.get("params")
        if params is None:
            params = {}

        if not isinstance(method, str):
            reply = _rpc_error(request_id, INVALID_REQUEST, "Invalid request: missing method")
        elif not isinstance(params, Mapping):
            reply = _rpc_error(request_id, INVALID_PARAMS, "params must be an object")
        elif method == "initialize":
            reply = _rpc_result(
                request_id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "serverInfo": {"name": SERVER_NAME, "version": __version__},
                    "capabilities": {"tools": {}},
                },
            )
        elif method == "ping":
            reply = _rpc_result(request_id, {})
        elif method == "tools/list":
            reply = _rpc_result(
                request_id, {"tools": self._dispatcher.registry.descriptors()}
            )
        elif method == "tools/call":
            arguments = params.get("arguments")
            command = Command(
                name=params.get("name"),  # type: ignore[arg-type]
                parameters=arguments if arguments is not None else {},
            )
            reply = self._rpc_dispatch(request_id, command)
        elif method.startswith("notifications/") and is_notification:
            reply = None
        else:
            reply = _rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        if is_notification:
            return None
        return reply

    def _rpc_dispatch(self, request_id: Any, command: Command) -> Dict[str, Any]:
        response = self._dispatcher.dispatch(command)
        if response.ok:
            return _rpc_result(request_id, response.body)
        code = response.body.get("code", "")
        return _rpc_error(
            request_id,
            _RPC_CODES.get(code, SERVER_ERROR),
            response.body.get("error", "command failed"),
            {"status": response.status, "code": code},
        )


__all__ = [
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "PROTOCOL_VERSION",
    "SERVER_ERROR",
    "WireProtocol",
]
