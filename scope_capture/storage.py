"""Folder-scoped file storage used for burst frames and composites."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Union

from scope_capture.errors import StorageUnavailable
from scope_capture.logging_setup import get_logger

StoragePath = Union[str, PurePosixPath]


@dataclass(frozen=True)
class FileEntry:
    """Single entry returned by :meth:`LocalStorage.list`."""

    name: str
    path: PurePosixPath
    is_dir: bool


class LocalStorage:
    """Hierarchical storage rooted at a local directory.

    All paths are relative to ``root`` and use ``/`` separators; names are
    case-sensitive.
    """

    PROBE_PREFIX = ".write_probe_"

    def __init__(self, root: Union[str, Path], *, logger: logging.Logger | None = None) -> None:
        self.root = Path(root)
        self.logger = logger or get_logger()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _relative(path: StoragePath) -> PurePosixPath:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Storage paths must be relative and stay inside the root: {path}")
        return relative

    def _resolve(self, path: StoragePath) -> Path:
        relative = self._relative(path)
        return self.root.joinpath(*relative.parts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write(self, path: StoragePath, data: bytes) -> None:
        """Write ``data`` atomically; raises ``OSError`` on failure."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.with_name(f".tmp_{uuid.uuid4().hex}_{target.name}")
        try:
            temp_path.write_bytes(data)
            temp_path.replace(target)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    def read(self, path: StoragePath) -> bytes:
        return self._resolve(path).read_bytes()

    def exists(self, path: StoragePath) -> bool:
        return self._resolve(path).exists()

    def list(self, folder: StoragePath = "") -> List[FileEntry]:
        """Return the entries of ``folder`` sorted by name, skipping temp files."""
        relative = self._relative(folder)
        directory = self._resolve(folder)
        if not directory.is_dir():
            return []
        entries = [
            FileEntry(name=child.name, path=relative / child.name, is_dir=child.is_dir())
            for child in directory.iterdir()
            if not child.name.startswith((".tmp_", self.PROBE_PREFIX))
        ]
        entries.sort(key=lambda entry: entry.name)
        return entries

    def make_folder(self, folder: StoragePath) -> None:
        self._resolve(folder).mkdir(parents=True, exist_ok=True)

    def ensure_writable(self, folder: StoragePath = "") -> None:
        """Create ``folder`` and verify a file can be written inside it."""
        directory = self._resolve(folder)
        probe = directory / f"{self.PROBE_PREFIX}{uuid.uuid4().hex}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as exc:
            raise StorageUnavailable(f"Storage folder '{directory}' is not writable: {exc}") from exc


__all__ = ["FileEntry", "LocalStorage", "StoragePath"]
