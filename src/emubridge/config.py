"""Bridge configuration resolved from defaults, TOML and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

import tomllib

from .log import resolve_level


DEFAULT_SSE_PORT = 3001
DEFAULT_WEB_UI_PORT = 3000
DEFAULT_MAX_DURATION_FRAMES = 3600

_ENVIRONMENT_KEYS: Mapping[str, str] = {
    "ROM_PATH": "rom_path",
    "ROMS_DIR": "roms_dir",
    "HOST": "host",
    "PORT": "port",
    "SERVER_PORT": "port",
    "EMUBRIDGE_LOG_FILE": "log_file",
    "EMUBRIDGE_LOG_LEVEL": "log_level",
    "EMUBRIDGE_MAX_DURATION_FRAMES": "max_duration_frames",
}


class ConfigError(ValueError):
    """Raised when a configuration source fails validation."""


@dataclass(frozen=True)
class BridgeConfig:
    """Settings shared by the transports and the process bootstrap."""

    rom_path: Path | None = None
    roms_dir: Path = Path("roms")
    host: str = "127.0.0.1"
    port: int | None = None
    log_file: Path | None = Path("emubridge.log")
    log_level: str = "INFO"
    max_duration_frames: int = DEFAULT_MAX_DURATION_FRAMES
    engine: str = "pyboy"

    def resolve_port(self, *, sse: bool) -> int:
        """Return the configured port or the mode's default."""

        if self.port is not None:
            return self.port
        return DEFAULT_SSE_PORT if sse else DEFAULT_WEB_UI_PORT

    def with_overrides(self, **overrides: Any) -> "BridgeConfig":
        """Return a copy with every non-``None`` override applied and validated."""

        present = {key: value for key, value in overrides.items() if value is not None}
        if not present:
            return self
        return replace(self, **_coerce_fields(present, base=Path.cwd()))


def load_bridge_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> BridgeConfig:
    """Layer the TOML file at ``config_path`` and ``environ`` over the defaults."""

    config = BridgeConfig()
    if config_path is not None:
        config = replace(config, **_load_toml(config_path))
    env = os.environ if environ is None else environ
    env_values: dict[str, Any] = {}
    for key, field_name in _ENVIRONMENT_KEYS.items():
        raw = env.get(key)
        if raw is None or not raw.strip():
            continue
        # PORT wins over SERVER_PORT when both are set.
        if field_name == "port" and key == "SERVER_PORT" and "port" in env_values:
            continue
        env_values[field_name] = raw.strip()
    if env_values:
        config = replace(config, **_coerce_fields(env_values, base=Path.cwd()))
    return config


def _load_toml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigError(f"bridge configuration not found: {config_path}")
    with config_path.open("rb") as stream:
        try:
            data = tomllib.load(stream)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {config_path}: {exc}") from exc

    section = data.get("bridge", {})
    if not isinstance(section, Mapping):
        raise ConfigError("[bridge] section must be a mapping")
    unknown = set(section) - set(BridgeConfig.__dataclass_fields__)
    if unknown:
        raise ConfigError(f"unknown [bridge] keys: {', '.join(sorted(unknown))}")
    return _coerce_fields(section, base=config_path.parent)


def _coerce_fields(values: Mapping[str, Any], *, base: Path) -> dict[str, Any]:
    coerced: dict[str, Any] = {}
    for name, raw in values.items():
        if name in {"rom_path", "roms_dir", "log_file"}:
            coerced[name] = _coerce_path(name, raw, base=base)
        elif name in {"port", "max_duration_frames"}:
            coerced[name] = _coerce_positive_int(name, raw)
        elif name == "log_level":
            coerced[name] = _coerce_log_level(raw)
        elif name in {"host", "engine"}:
            coerced[name] = _coerce_text(name, raw)
        else:
            raise ConfigError(f"unknown configuration key: {name}")
    port = coerced.get("port")
    if port is not None and port > 65535:
        raise ConfigError(f"port {port} outside supported range 1-65535")
    return coerced


def _coerce_path(name: str, raw: Any, *, base: Path) -> Path:
    if not isinstance(raw, (str, Path)):
        raise ConfigError(f"{name} must be a string or path-like")
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def _coerce_positive_int(name: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"{name} must be an integer")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip(), base=10)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer, received {raw!r}") from exc
    else:
        raise ConfigError(f"{name} must be an integer")
    if value <= 0:
        raise ConfigError(f"{name} must be positive")
    return value


def _coerce_text(name: str, raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return raw.strip()


def _coerce_log_level(raw: Any) -> str:
    level = _coerce_text("log_level", raw).upper()
    try:
        resolve_level(level)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return level


__all__ = [
    "BridgeConfig",
    "ConfigError",
    "DEFAULT_MAX_DURATION_FRAMES",
    "DEFAULT_SSE_PORT",
    "DEFAULT_WEB_UI_PORT",
    "load_bridge_config",
]
