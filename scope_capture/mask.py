"""Capture mask geometry, pointer interaction and masked photo extraction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from scope_capture.config import MaskSettings
from scope_capture.models import CroppedPhoto, Frame, MaskShape, Region

Point = Tuple[float, float]
Size = Tuple[float, float]


def to_native_delta(display_delta: Point, display_size: Size, native_size: Size) -> Point:
    """Rescale a pointer delta measured on screen into native frame pixels.

    The preview may be drawn at any size, so each axis is scaled by
    ``native / displayed`` independently.
    """
    display_width, display_height = display_size
    native_width, native_height = native_size
    if display_width <= 0 or display_height <= 0:
        raise ValueError(f"Display size must be positive, got {display_size}")
    dx, dy = display_delta
    return (dx * native_width / display_width, dy * native_height / display_height)


class CaptureMask:
    """User-adjustable rectangle or ellipse kept for single-photo capture.

    Coordinates are native frame pixels stored as floats. After every mutation
    the mask lies inside the frame and is at least ``min_size`` on both axes
    (or as large as the frame, when the frame itself is smaller).
    """

    def __init__(
        self,
        frame_width: int,
        frame_height: int,
        *,
        x: float = 100.0,
        y: float = 100.0,
        width: float = 400.0,
        height: float = 400.0,
        shape: MaskShape = MaskShape.ELLIPSE,
        active: bool = True,
        min_size: int = 50,
    ) -> None:
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError("Frame dimensions must be positive")
        self.frame_width = int(frame_width)
        self.frame_height = int(frame_height)
        self.x = float(x)
        self.y = float(y)
        self.width = float(width)
        self.height = float(height)
        self.shape = shape
        self.active = active
        self.min_size = min_size
        self._clamp()

    @classmethod
    def from_settings(cls, settings: MaskSettings, frame_width: int, frame_height: int) -> "CaptureMask":
        return cls(
            frame_width,
            frame_height,
            x=settings.x,
            y=settings.y,
            width=settings.width,
            height=settings.height,
            shape=settings.shape,
            active=settings.active,
            min_size=settings.min_size,
        )

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    @property
    def min_width(self) -> float:
        return float(min(self.min_size, self.frame_width))

    @property
    def min_height(self) -> float:
        return float(min(self.min_size, self.frame_height))

    def _clamp(self) -> None:
        self.width = max(self.min_width, min(self.width, float(self.frame_width)))
        self.height = max(self.min_height, min(self.height, float(self.frame_height)))
        self.x = max(0.0, min(self.x, self.frame_width - self.width))
        self.y = max(0.0, min(self.y, self.frame_height - self.height))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_from_region(self, region: Region) -> None:
        self.x = float(region.x)
        self.y = float(region.y)
        self.width = float(region.width)
        self.height = float(region.height)
        self.shape = region.shape
        self.active = True
        self._clamp()

    def translate(self, dx: float, dy: float) -> None:
        self.x += dx
        self.y += dy
        self._clamp()

    def resize(self, d_width: float, d_height: float) -> None:
        # Grow from the top-left corner without moving the mask.
        self.width = min(self.width + d_width, self.frame_width - self.x)
        self.height = min(self.height + d_height, self.frame_height - self.y)
        self._clamp()

    def toggle_shape(self) -> MaskShape:
        self.shape = self.shape.toggled()
        return self.shape

    def set_active(self, active: bool) -> None:
        self.active = bool(active)

    def set_frame_size(self, frame_width: int, frame_height: int) -> None:
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError("Frame dimensions must be positive")
        self.frame_width = int(frame_width)
        self.frame_height = int(frame_height)
        self._clamp()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def pixel_box(self) -> Tuple[int, int, int, int]:
        """Integer ``(x, y, width, height)`` that still fits inside the frame."""
        x = int(round(self.x))
        y = int(round(self.y))
        width = min(int(round(self.width)), self.frame_width - x)
        height = min(int(round(self.height)), self.frame_height - y)
        return x, y, max(1, width), max(1, height)

    def __repr__(self) -> str:
        return (
            f"CaptureMask(x={self.x:.1f}, y={self.y:.1f}, width={self.width:.1f}, "
            f"height={self.height:.1f}, shape={self.shape.value}, active={self.active})"
        )


class DragMode(str, Enum):
    MOVE = "move"
    RESIZE = "resize"
    PAN = "pan"


@dataclass(frozen=True)
class Dragging:
    mode: DragMode
    last_point: Point


class DragTracker:
    """Pointer drag state machine: ``Idle -> Dragging -> Idle``.

    ``move`` reports the delta since the previous event and re-anchors on the
    new point, so consecutive moves never double count.
    """

    def __init__(self) -> None:
        self.state: Optional[Dragging] = None

    @property
    def is_dragging(self) -> bool:
        return self.state is not None

    def press(self, point: Point, mode: DragMode) -> None:
        self.state = Dragging(mode=mode, last_point=point)

    def move(self, point: Point) -> Optional[Tuple[DragMode, Point]]:
        if self.state is None:
            return None
        last_x, last_y = self.state.last_point
        delta = (point[0] - last_x, point[1] - last_y)
        mode = self.state.mode
        self.state = Dragging(mode=mode, last_point=point)
        return mode, delta

    def release(self) -> None:
        self.state = None


class MaskInteraction:
    """Apply pointer drags on the preview to a :class:`CaptureMask`."""

    def __init__(self, mask: CaptureMask, display_size: Size) -> None:
        self.mask = mask
        self.display_size = display_size
        self.tracker = DragTracker()

    def press(self, point: Point, mode: DragMode = DragMode.MOVE) -> None:
        if mode is DragMode.PAN:
            raise ValueError("The capture mask supports move and resize drags only")
        self.tracker.press(point, mode)

    def move(self, point: Point) -> bool:
        """Handle a pointer move; returns ``True`` when the mask changed."""
        event = self.tracker.move(point)
        if event is None or not self.mask.active:
            return False
        mode, display_delta = event
        dx, dy = to_native_delta(
            display_delta,
            self.display_size,
            (self.mask.frame_width, self.mask.frame_height),
        )
        if mode is DragMode.MOVE:
            self.mask.translate(dx, dy)
        else:
            self.mask.resize(dx, dy)
        return True

    def release(self) -> None:
        self.tracker.release()


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def apply_mask(frame: Frame, mask: CaptureMask, *, logger: Optional[logging.Logger] = None) -> CroppedPhoto:
    """Cut the mask area out of ``frame`` as a BGRA image.

    Pixels outside the clip shape (or outside the frame) are fully
    transparent.
    """
    x, y, width, height = mask.pixel_box()
    source = _to_bgr(frame.image)
    frame_height, frame_width = source.shape[:2]

    output = np.zeros((height, width, 4), dtype=np.uint8)
    coverage = np.zeros((height, width), dtype=np.uint8)

    src_x0, src_y0 = max(0, x), max(0, y)
    src_x1, src_y1 = min(frame_width, x + width), min(frame_height, y + height)
    if src_x1 > src_x0 and src_y1 > src_y0:
        output[src_y0 - y:src_y1 - y, src_x0 - x:src_x1 - x, :3] = source[src_y0:src_y1, src_x0:src_x1]
        coverage[src_y0 - y:src_y1 - y, src_x0 - x:src_x1 - x] = 255
    elif logger is not None:
        logger.warning("Capture mask %s does not overlap the %sx%s frame", mask, frame_width, frame_height)

    if mask.shape is MaskShape.ELLIPSE:
        clip = np.zeros((height, width), dtype=np.uint8)
        # Sub-pixel centre/axes with 4 fractional bits.
        scale = 16
        center = (int(round((width - 1) / 2 * scale)), int(round((height - 1) / 2 * scale)))
        axes = (int(round(width / 2 * scale)), int(round(height / 2 * scale)))
        cv2.ellipse(clip, center, axes, 0, 0, 360, 255, -1, cv2.LINE_AA, 4)
        output[:, :, 3] = np.minimum(clip, coverage)
    else:
        output[:, :, 3] = coverage

    return CroppedPhoto(image=output, timestamp=frame.timestamp, shape=mask.shape)


__all__ = [
    "CaptureMask",
    "DragMode",
    "DragTracker",
    "Dragging",
    "MaskInteraction",
    "apply_mask",
    "to_native_delta",
]
