"""Error taxonomy shared by the service, dispatcher and transports."""

from __future__ import annotations


class EmulatorError(Exception):
    """Base class for failures that surface as structured error responses."""

    status: int = 500
    code: str = "emulator_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        """Return the ``{"error", "code"}`` body sent to remote callers."""

        return {"error": self.message, "code": self.code}


class NotLoadedError(EmulatorError):
    """Raised when an operation needs a resident ROM and none is loaded."""

    status = 400
    code = "not_loaded"

    def __init__(self, message: str = "No ROM loaded") -> None:
        super().__init__(message)


class NotFoundError(EmulatorError):
    """Raised when a ROM path does not resolve to a readable file."""

    status = 404
    code = "not_found"


class InvalidParameterError(EmulatorError):
    """Raised when command parameters violate the declared schema."""

    status = 400
    code = "invalid_parameter"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"invalid parameter '{field}': {message}")
        self.field = field


# Service-level name for the same failure; validation and the service share it.
InvalidArgumentError = InvalidParameterError


class UnknownCommandError(EmulatorError):
    """Raised when a command name is not registered."""

    status = 400
    code = "unknown_command"

    def __init__(self, name: object) -> None:
        if name is None or name == "":
            super().__init__("Tool name is required")
        else:
            super().__init__(f"Unknown tool: {name}")
        self.name = name


class SessionNotFoundError(EmulatorError):
    """Raised when a multiplexed message names an unknown or closed session."""

    status = 404
    code = "session_not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class EngineFailure(EmulatorError):
    """Raised when the emulation engine faults while executing a command."""

    status = 500
    code = "engine_failure"


__all__ = [
    "EmulatorError",
    "EngineFailure",
    "InvalidArgumentError",
    "InvalidParameterError",
    "NotFoundError",
    "NotLoadedError",
    "SessionNotFoundError",
    "UnknownCommandError",
]
