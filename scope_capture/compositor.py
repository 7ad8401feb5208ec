"""Mosaic and kymogram compositing of burst frames."""

from __future__ import annotations

import logging
import math
import threading
from pathlib import PurePosixPath
from typing import List, Optional, Sequence, Tuple, Union, overload

import cv2
import numpy as np

from scope_capture.config import MosaicSettings
from scope_capture.errors import (
    CompositeCancelled,
    EmptyCompositeInput,
    FrameLoadFailure,
)
from scope_capture.logging_setup import get_logger
from scope_capture.models import CompositeImage, CompositeKind, Frame, MosaicTransform
from scope_capture.progress import ProgressLog
from scope_capture.sessions import list_frame_files
from scope_capture.sources import decode_image
from scope_capture.storage import LocalStorage

PREVIEW_BACKGROUND_BGR = (59, 41, 30)
PREVIEW_OUTLINE_BGR = (94, 197, 34)
PREVIEW_DIM_FACTOR = 0.3


class StoredFrameSequence(Sequence[Frame]):
    """Burst frames read from storage on demand, one decode per access."""

    def __init__(self, storage: LocalStorage, paths: Sequence[PurePosixPath]) -> None:
        self.storage = storage
        self.paths: List[PurePosixPath] = list(paths)

    def __len__(self) -> int:
        return len(self.paths)

    @overload
    def __getitem__(self, index: int) -> Frame: ...

    @overload
    def __getitem__(self, index: slice) -> "StoredFrameSequence": ...

    def __getitem__(self, index: Union[int, slice]) -> Union[Frame, "StoredFrameSequence"]:
        if isinstance(index, slice):
            return StoredFrameSequence(self.storage, self.paths[index])
        path = self.paths[index]
        try:
            data = self.storage.read(path)
        except OSError as exc:
            raise FrameLoadFailure(path, f"unreadable ({exc})") from exc
        image = decode_image(data)
        if image is None:
            raise FrameLoadFailure(path, "not a decodable image")
        return Frame(image=image, timestamp=float(index))


def slice_matrix(
    frame_width: int,
    frame_height: int,
    transform: MosaicTransform,
    output_size: Tuple[int, int],
) -> np.ndarray:
    """2x3 affine matrix mapping frame pixels into an output buffer.

    Equivalent to: translate to the output centre, translate by the pan,
    rotate, scale, then draw the frame centred on the origin. Rotation is
    clockwise on the y-down raster. Preview and bake share this matrix.
    """
    out_width, out_height = output_size
    theta = math.radians(transform.rotation_degrees)
    cos_t = math.cos(theta) * transform.scale
    sin_t = math.sin(theta) * transform.scale
    linear = np.array([[cos_t, -sin_t], [sin_t, cos_t]], dtype=np.float64)

    anchor = np.array([out_width / 2.0 + transform.pan_x, out_height / 2.0 + transform.pan_y])
    offset = anchor - linear @ np.array([frame_width / 2.0, frame_height / 2.0])
    # Convert from continuous coordinates to OpenCV pixel-centre indices.
    offset = offset + linear @ np.array([0.5, 0.5]) - 0.5

    matrix = np.zeros((2, 3), dtype=np.float64)
    matrix[:, :2] = linear
    matrix[:, 2] = offset
    return matrix


def _ensure_bgra(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 1:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    if image.shape[2] == 4:
        return image
    raise ValueError(f"Unsupported channel count {image.shape[2]}")


def _blend_onto(canvas: np.ndarray, tile: np.ndarray, x: int, y: int) -> None:
    """Alpha-blend a BGRA tile onto the opaque BGR canvas at ``(x, y)``."""
    height, width = tile.shape[:2]
    region = canvas[y:y + height, x:x + width].astype(np.uint32)
    alpha = tile[:, :, 3:4].astype(np.uint32)
    color = tile[:, :, :3].astype(np.uint32)
    blended = (color * alpha + region * (255 - alpha) + 127) // 255
    canvas[y:y + height, x:x + width] = blended.astype(np.uint8)


class Compositor:
    """Turn an ordered burst into a tile-grid mosaic or a kymogram."""

    def __init__(
        self,
        settings: Optional[MosaicSettings] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings or MosaicSettings()
        self.logger = logger or get_logger()

    # ------------------------------------------------------------------
    # Mode selection
    # ------------------------------------------------------------------

    def is_kymogram(self, transform: MosaicTransform) -> bool:
        return transform.columns == 1 and transform.crop_height < self.settings.kymogram_max_slice_height

    # ------------------------------------------------------------------
    # Slice extraction
    # ------------------------------------------------------------------

    def extract_slice(self, frame: Frame, transform: MosaicTransform) -> np.ndarray:
        """Render one frame through ``transform`` into a BGRA crop buffer.

        Areas not covered by the frame stay transparent.
        """
        size = (transform.crop_width, transform.crop_height)
        matrix = slice_matrix(frame.width, frame.height, transform, size)
        return cv2.warpAffine(
            _ensure_bgra(frame.image),
            matrix,
            size,
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0),
        )

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def compose(
        self,
        frames: Sequence[Frame],
        transform: MosaicTransform,
        *,
        cancel: Optional[threading.Event] = None,
        label: str = "composite",
    ) -> CompositeImage:
        """Compose ``frames`` (already in capture order) into one image.

        Raises ``EmptyCompositeInput`` for an empty sequence before any
        allocation and ``FrameLoadFailure`` if any frame cannot be loaded; a
        partial composite is never returned.
        """
        total = len(frames)
        if total == 0:
            raise EmptyCompositeInput()
        transform.validate()

        first = self._load(frames, 0)
        kymogram = self.is_kymogram(transform)
        crop_width, crop_height = transform.crop_width, transform.crop_height

        if kymogram:
            kind = CompositeKind.KYMOGRAM
            columns = 1
            canvas_width = first.width
            canvas_height = crop_height * total
        else:
            kind = CompositeKind.TILE_GRID
            columns = min(transform.columns, total)
            rows = math.ceil(total / columns)
            canvas_width = crop_width * columns + transform.gap_x * (columns - 1)
            canvas_height = crop_height * rows + transform.gap_y * (rows - 1)

        self.logger.info(
            "Composing %s %s from %s frames into %sx%s canvas",
            label,
            kind.value,
            total,
            canvas_width,
            canvas_height,
        )

        canvas = np.full(
            (canvas_height, canvas_width, 3),
            self.settings.background_color,
            dtype=np.uint8,
        )
        progress = ProgressLog(self.logger, f"Composite progress for {label}", total)

        for index in range(total):
            if cancel is not None and cancel.is_set():
                self.logger.info("Composite %s cancelled after %s/%s frames", label, index, total)
                raise CompositeCancelled(f"Composite cancelled after {index} of {total} frames")

            frame = first if index == 0 else self._load(frames, index)
            tile = self.extract_slice(frame, transform)

            if kymogram:
                # Nearest neighbour keeps the cycle edges sharp.
                band = cv2.resize(tile, (canvas_width, crop_height), interpolation=cv2.INTER_NEAREST)
                _blend_onto(canvas, band, 0, index * crop_height)
            else:
                column = index % columns
                row = index // columns
                _blend_onto(
                    canvas,
                    tile,
                    column * (crop_width + transform.gap_x),
                    row * (crop_height + transform.gap_y),
                )
            progress.update(index + 1)

        return CompositeImage(image=canvas, kind=kind, frame_count=total)

    def compose_folder(
        self,
        storage: LocalStorage,
        folder: Union[str, PurePosixPath],
        transform: MosaicTransform,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> CompositeImage:
        """Compose every frame file of a stored burst folder."""
        paths = list_frame_files(storage, folder)
        return self.compose(
            StoredFrameSequence(storage, paths),
            transform,
            cancel=cancel,
            label=f"'{PurePosixPath(folder).name}'",
        )

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def render_preview(self, frame: Frame, transform: MosaicTransform, size: int = 600) -> np.ndarray:
        """Editor preview: transformed frame with the crop area highlighted."""
        matrix = slice_matrix(frame.width, frame.height, transform, (size, size))
        warped = cv2.warpAffine(
            _ensure_bgra(frame.image),
            matrix,
            (size, size),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0),
        )
        preview = np.full((size, size, 3), PREVIEW_BACKGROUND_BGR, dtype=np.uint8)
        _blend_onto(preview, warped, 0, 0)

        x0 = int(round((size - transform.crop_width) / 2))
        y0 = int(round((size - transform.crop_height) / 2))
        x1 = x0 + transform.crop_width
        y1 = y0 + transform.crop_height

        dimmed = (preview.astype(np.float32) * PREVIEW_DIM_FACTOR).astype(np.uint8)
        inside = np.zeros((size, size), dtype=bool)
        inside[max(0, y0):max(0, y1), max(0, x0):max(0, x1)] = True
        preview[~inside] = dimmed[~inside]

        cv2.rectangle(preview, (x0, y0), (x1 - 1, y1 - 1), PREVIEW_OUTLINE_BGR, 2)
        return preview

    # ------------------------------------------------------------------
    # Internal utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _load(frames: Sequence[Frame], index: int) -> Frame:
        try:
            frame = frames[index]
        except FrameLoadFailure:
            raise
        except (OSError, ValueError) as exc:
            raise FrameLoadFailure(None, f"frame {index}: {exc}") from exc
        if not isinstance(frame, Frame):
            raise FrameLoadFailure(None, f"frame {index} is {type(frame).__name__}, not a Frame")
        return frame


__all__ = [
    "Compositor",
    "StoredFrameSequence",
    "slice_matrix",
]
