"""ROM directory listing and upload helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


logger = logging.getLogger(__name__)

ROM_SUFFIXES = (".gb", ".gbc")


class RomLibraryError(ValueError):
    """Raised when a ROM filename or upload fails validation."""


@dataclass(frozen=True)
class RomEntry:
    """A ROM file available in the library directory."""

    name: str
    path: str

    def as_dict(self) -> dict[str, str]:
        return {"name": self.name, "path": self.path}


class RomLibrary:
    """Directory of ROM images offered to remote callers."""

    def __init__(self, root: Path, *, suffixes: Iterable[str] = ROM_SUFFIXES) -> None:
        self.root = Path(root)
        self.suffixes = tuple(suffix.lower() for suffix in suffixes)

    def ensure_root(self) -> Path:
        if not self.root.exists():
            self.root.mkdir(parents=True)
            logger.info("Created roms directory %s", self.root)
        return self.root

    def list_roms(self) -> list[RomEntry]:
        """Return ROM entries sorted by filename; an empty directory yields ``[]``."""

        root = self.ensure_root()
        entries = [
            RomEntry(name=child.name, path=str(root / child.name))
            for child in root.iterdir()
            if child.is_file() and child.suffix.lower() in self.suffixes
        ]
        entries.sort(key=lambda entry: entry.name)
        logger.debug("Listed %d ROM(s) in %s", len(entries), root)
        return entries

    def save_upload(self, filename: str, data: bytes) -> RomEntry:
        """Store ``data`` as ``filename`` inside the library directory."""

        name = validate_rom_filename(filename, suffixes=self.suffixes)
        if not data:
            raise RomLibraryError("uploaded ROM is empty")
        target = self.ensure_root() / name
        target.write_bytes(data)
        logger.info("Stored uploaded ROM %s (%d bytes)", target, len(data))
        return RomEntry(name=name, path=str(target))


def validate_rom_filename(
    filename: str, *, suffixes: Iterable[str] = ROM_SUFFIXES
) -> str:
    """Ensure ``filename`` names a ROM without escaping the library directory."""

    if not isinstance(filename, str):
        raise RomLibraryError("filenames must be text")
    preserved = filename.strip()
    if not preserved:
        raise RomLibraryError("filenames must not be empty")

    illegal = {"/", "\\", ":", "\x00"}
    if any(char in preserved for char in illegal) or preserved in {".", ".."}:
        raise RomLibraryError(f"filename '{filename}' contains forbidden path characters")
    allowed = tuple(suffixes)
    if not preserved.lower().endswith(allowed):
        raise RomLibraryError(
            f"filename '{filename}' must end with one of: {', '.join(allowed)}"
        )
    return preserved


__all__ = [
    "ROM_SUFFIXES",
    "RomEntry",
    "RomLibrary",
    "RomLibraryError",
    "validate_rom_filename",
]
