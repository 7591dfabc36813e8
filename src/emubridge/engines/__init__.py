"""Concrete emulation engines.

Adapters are imported on demand so the bridge can run against any
:class:`~emubridge.engine.FrameEngine` without their libraries installed.
"""

from __future__ import annotations

from importlib import import_module
from typing import Callable

from ..engine import FrameEngine


ENGINE_IMPORTS: dict[str, str] = {
    "pyboy": "emubridge.engines.pyboy_engine:PyBoyEngine",
}


def resolve_engine_factory(name: str) -> Callable[[], FrameEngine]:
    """Return the engine class registered under ``name``."""

    try:
        import_path = ENGINE_IMPORTS[name]
    except KeyError as exc:
        known = ", ".join(sorted(ENGINE_IMPORTS))
        raise ValueError(f"unknown engine {name!r} (expected one of: {known})") from exc
    module_name, attribute = import_path.split(":", 1)
    module = import_module(module_name)
    factory = getattr(module, attribute)
    if not callable(factory):
        raise TypeError(f"engine '{import_path}' resolved to non-callable {type(factory)!r}")
    return factory


__all__ = ["ENGINE_IMPORTS", "resolve_engine_factory"]
