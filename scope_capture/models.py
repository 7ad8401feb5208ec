"""Data models used across the scope capture pipeline."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

import numpy as np


class MaskShape(str, Enum):
    """Clip shape applied when a masked photo is captured."""

    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"

    def toggled(self) -> "MaskShape":
        if self is MaskShape.ELLIPSE:
            return MaskShape.RECTANGLE
        return MaskShape.ELLIPSE


class CompositeKind(str, Enum):
    """Layout used to build a composite image from a burst."""

    TILE_GRID = "tile-grid"
    KYMOGRAM = "kymogram"


@dataclass(frozen=True)
class Frame:
    """Raster frame as produced by a frame source.

    The frame holds a read-only view of the pixel buffer so downstream stages
    cannot mutate a frame that another stage still holds. The caller's array
    keeps its own flags.
    """

    image: np.ndarray
    timestamp: float

    def __post_init__(self) -> None:
        if self.image.ndim not in (2, 3):
            raise ValueError(f"Unsupported frame shape {self.image.shape}")
        view = self.image.view()
        view.setflags(write=False)
        object.__setattr__(self, "image", view)

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    def __repr__(self) -> str:
        return f"Frame({self.width}x{self.height}, timestamp={self.timestamp:.3f})"


@dataclass(frozen=True)
class Region:
    """Illuminated area found inside a frame, in native pixel coordinates."""

    x: int
    y: int
    width: int
    height: int
    shape: MaskShape


@dataclass(frozen=True)
class BurstSession:
    """Finalized record of a burst capture run."""

    id: str
    folder_name: str
    started_at: datetime
    frame_count: int
    finished_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.frame_count <= 0


@dataclass(frozen=True)
class MosaicTransform:
    """Uniform per-slice transform applied to every frame of a burst."""

    rotation_degrees: float = 0.0
    scale: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    crop_width: int = 200
    crop_height: int = 300
    columns: int = 8
    gap_x: int = 0
    gap_y: int = 0

    def validate(self) -> None:
        if self.scale <= 0:
            raise ValueError("scale must be greater than zero")
        if self.crop_width <= 0 or self.crop_height <= 0:
            raise ValueError("crop dimensions must be greater than zero")
        if self.columns < 1:
            raise ValueError("columns must be at least 1")
        if self.gap_x < 0 or self.gap_y < 0:
            raise ValueError("gaps must not be negative")

    def with_pan(self, dx: float, dy: float) -> "MosaicTransform":
        return replace(self, pan_x=self.pan_x + dx, pan_y=self.pan_y + dy)


@dataclass(frozen=True)
class CompositeImage:
    """Output of the compositor."""

    image: np.ndarray
    kind: CompositeKind
    frame_count: int

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass(frozen=True)
class CroppedPhoto:
    """Single photo cut out of a live frame through the capture mask."""

    image: np.ndarray
    timestamp: float
    shape: Optional[MaskShape]


__all__ = [
    "BurstSession",
    "CompositeImage",
    "CompositeKind",
    "CroppedPhoto",
    "Frame",
    "MaskShape",
    "MosaicTransform",
    "Region",
]
