"""Burst session naming, discovery and history for the scope capture pipeline."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from pathlib import PurePosixPath
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from scope_capture.models import BurstSession
from scope_capture.storage import LocalStorage

DEFAULT_SUBJECT = "Unnamed"
FRAME_EXTENSIONS = (".jpg", ".jpeg", ".png")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")
_BURST_FOLDER = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})_(?P<subject>.*)_BURST_(?P<time>\d{6})$")
_DIGITS = re.compile(r"(\d+)")


def sanitize_subject_name(name: Optional[str]) -> str:
    """Replace every character outside ``[A-Za-z0-9]`` with ``_``."""
    return _UNSAFE_CHARS.sub("_", name or DEFAULT_SUBJECT)


def burst_folder_name(subject: Optional[str], when: datetime) -> str:
    return f"{when.strftime('%Y-%m-%d')}_{sanitize_subject_name(subject)}_BURST_{when.strftime('%H%M%S')}"


def burst_frame_filename(index: int, extension: str = "jpg") -> str:
    return f"IMG_{index:04d}.{extension}"


def composite_filename(subject: Optional[str], when: datetime) -> str:
    return f"{when.strftime('%Y-%m-%d')}_{sanitize_subject_name(subject)}_MOSAICO.png"


def photo_filename(subject: Optional[str], when: datetime) -> str:
    return f"{when.strftime('%Y-%m-%d')}_{sanitize_subject_name(subject)}_FOTO_{when.strftime('%H%M%S')}.jpg"


def parse_burst_folder(folder_name: str) -> Optional[datetime]:
    """Parse the capture datetime encoded in a burst folder name."""
    match = _BURST_FOLDER.match(folder_name)
    if match is None:
        return None
    try:
        return datetime.strptime(f"{match['date']} {match['time']}", "%Y-%m-%d %H%M%S")
    except ValueError:
        return None


def natural_sort_key(name: str) -> Tuple[Union[int, str], ...]:
    """Sort key comparing digit runs numerically (``IMG_2`` before ``IMG_10``)."""
    return tuple(
        int(part) if part.isdigit() else part.lower()
        for part in _DIGITS.split(name)
    )


def is_frame_file(name: str) -> bool:
    return name.lower().endswith(FRAME_EXTENSIONS)


def list_frame_files(storage: LocalStorage, folder: Union[str, PurePosixPath]) -> List[PurePosixPath]:
    """Return the raster files of a burst folder in capture order."""
    entries = [
        entry
        for entry in storage.list(folder)
        if not entry.is_dir and is_frame_file(entry.name)
    ]
    entries.sort(key=lambda entry: natural_sort_key(entry.name))
    return [entry.path for entry in entries]


class BurstHistory:
    """Ordered record of completed, non-empty burst sessions."""

    def __init__(self, sessions: Optional[Sequence[BurstSession]] = None) -> None:
        self._sessions: List[BurstSession] = list(sessions or [])

    def append(self, session: BurstSession) -> None:
        if session.is_empty:
            raise ValueError(f"Refusing to record empty burst session {session.folder_name}")
        self._sessions.append(session)

    def find(self, folder_name: str) -> Optional[BurstSession]:
        for session in self._sessions:
            if session.folder_name == folder_name:
                return session
        return None

    def latest(self) -> Optional[BurstSession]:
        return self._sessions[-1] if self._sessions else None

    def clear(self) -> None:
        self._sessions.clear()

    def __iter__(self) -> Iterator[BurstSession]:
        return iter(list(self._sessions))

    def __len__(self) -> int:
        return len(self._sessions)


def discover_sessions(storage: LocalStorage) -> List[BurstSession]:
    """Rebuild burst sessions from folders already present in storage.

    Folders that do not follow the burst naming scheme or hold no frames are
    skipped. Sessions are ordered chronologically.
    """
    sessions: List[Tuple[datetime, BurstSession]] = []
    for entry in storage.list(""):
        if not entry.is_dir:
            continue
        started_at = parse_burst_folder(entry.name)
        if started_at is None:
            continue
        frame_count = len(list_frame_files(storage, entry.path))
        if frame_count == 0:
            continue
        session = BurstSession(
            id=str(uuid.uuid5(uuid.NAMESPACE_URL, entry.name)),
            folder_name=entry.name,
            started_at=started_at,
            frame_count=frame_count,
        )
        sessions.append((started_at, session))

    sessions.sort(key=lambda item: item[0])
    return [session for _, session in sessions]


__all__ = [
    "BurstHistory",
    "DEFAULT_SUBJECT",
    "burst_folder_name",
    "burst_frame_filename",
    "composite_filename",
    "discover_sessions",
    "is_frame_file",
    "list_frame_files",
    "natural_sort_key",
    "parse_burst_folder",
    "photo_filename",
    "sanitize_subject_name",
]
