"""Illuminated-region detection for vignetted scope feeds.

Fiberscope and endoscope feeds are black outside the lit fibre bundle, so the
usable area is found by scanning a strided grid of pixels for anything
brighter than a threshold and taking the padded bounding box of the hits.
The result only seeds the capture mask; it is not a measurement.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from scope_capture.config import DetectionSettings
from scope_capture.logging_setup import get_logger
from scope_capture.models import Frame, MaskShape, Region


class RegionDetector:
    """Find the bounding box and shape of the lit part of a frame."""

    def __init__(
        self,
        settings: Optional[DetectionSettings] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings or DetectionSettings()
        self.logger = logger or get_logger()

    def brightness(self, image: np.ndarray) -> np.ndarray:
        """Per-pixel brightness as the maximum colour channel (alpha ignored)."""
        if image.ndim == 2:
            return image
        return image[:, :, :3].max(axis=2)

    def detect(self, frame: Frame) -> Optional[Region]:
        settings = self.settings
        stride = max(1, settings.stride)
        height, width = frame.height, frame.width

        sampled = self.brightness(frame.image[::stride, ::stride])
        rows, cols = np.nonzero(sampled > settings.threshold)
        if rows.size == 0:
            self.logger.debug("Region detection found no lit pixels in %sx%s frame", width, height)
            return None

        min_x = max(0, int(cols.min()) * stride - settings.padding)
        max_x = min(width, int(cols.max()) * stride + settings.padding)
        min_y = max(0, int(rows.min()) * stride - settings.padding)
        max_y = min(height, int(rows.max()) * stride + settings.padding)

        region_width = max_x - min_x
        region_height = max_y - min_y
        if region_width <= settings.min_region_size or region_height <= settings.min_region_size:
            self.logger.debug(
                "Region detection inconclusive (%sx%s at %s,%s); keeping current mask",
                region_width,
                region_height,
                min_x,
                min_y,
            )
            return None

        ratio = region_width / region_height
        if settings.ellipse_ratio_min <= ratio <= settings.ellipse_ratio_max:
            shape = MaskShape.ELLIPSE
        else:
            shape = MaskShape.RECTANGLE

        return Region(x=min_x, y=min_y, width=region_width, height=region_height, shape=shape)


__all__ = ["RegionDetector"]
