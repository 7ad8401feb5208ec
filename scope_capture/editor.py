"""Interactive state of the mosaic editor."""

from __future__ import annotations

from dataclasses import fields, replace
from typing import Any, Optional, Tuple

import numpy as np

from scope_capture.compositor import Compositor
from scope_capture.mask import DragMode, DragTracker, Point, to_native_delta
from scope_capture.models import Frame, MosaicTransform

_EDITABLE_FIELDS = frozenset(field.name for field in fields(MosaicTransform))


class MosaicEditor:
    """Edit a :class:`MosaicTransform` against the first frame of a burst.

    The preview is rendered at ``preview_size`` pixels square; pan drags are
    measured on a display of ``display_size`` and rescaled to preview pixels.
    """

    def __init__(
        self,
        first_frame: Frame,
        compositor: Compositor,
        *,
        transform: Optional[MosaicTransform] = None,
        preview_size: int = 600,
        display_size: Optional[Tuple[float, float]] = None,
    ) -> None:
        self.first_frame = first_frame
        self.compositor = compositor
        self.default_transform = transform or compositor.settings.default_transform
        self.transform = self.default_transform
        self.preview_size = preview_size
        self.display_size = display_size or (float(preview_size), float(preview_size))
        self.tracker = DragTracker()

    def update(self, **changes: Any) -> MosaicTransform:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown transform fields: {', '.join(sorted(unknown))}")
        candidate = replace(self.transform, **changes)
        candidate.validate()
        self.transform = candidate
        return candidate

    def reset(self) -> MosaicTransform:
        self.transform = self.default_transform
        self.tracker.release()
        return self.transform

    def press(self, point: Point) -> None:
        self.tracker.press(point, DragMode.PAN)

    def drag(self, point: Point) -> MosaicTransform:
        event = self.tracker.move(point)
        if event is None:
            return self.transform
        _, display_delta = event
        dx, dy = to_native_delta(
            display_delta,
            self.display_size,
            (self.preview_size, self.preview_size),
        )
        self.transform = self.transform.with_pan(dx, dy)
        return self.transform

    def release(self) -> None:
        self.tracker.release()

    @property
    def is_kymogram(self) -> bool:
        return self.compositor.is_kymogram(self.transform)

    def preview(self) -> np.ndarray:
        return self.compositor.render_preview(self.first_frame, self.transform, self.preview_size)


__all__ = ["MosaicEditor"]
