"""Exception types raised by the scope capture pipeline."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional, Union


class CaptureError(Exception):
    """Base class for pipeline failures surfaced to callers."""


class StorageUnavailable(CaptureError):
    """The destination storage cannot be written to."""


class FrameSourceError(CaptureError):
    """The frame source could not deliver a frame."""


class FramePersistFailure(CaptureError):
    """A single burst frame could not be encoded or written."""


class EmptyCompositeInput(CaptureError):
    """A composite was requested for an empty frame sequence."""

    def __init__(self, message: str = "No frames available to compose") -> None:
        super().__init__(message)


class FrameLoadFailure(CaptureError):
    """One of the frames of a composite could not be loaded."""

    def __init__(self, path: Union[str, PurePosixPath, None], reason: str) -> None:
        self.path: Optional[str] = str(path) if path is not None else None
        self.reason = reason
        where = self.path or "<in-memory frame>"
        super().__init__(f"Failed to load frame {where}: {reason}")


class CompositeCancelled(CaptureError):
    """The caller cancelled a composite before it finished."""


__all__ = [
    "CaptureError",
    "CompositeCancelled",
    "EmptyCompositeInput",
    "FrameLoadFailure",
    "FramePersistFailure",
    "FrameSourceError",
    "StorageUnavailable",
]
