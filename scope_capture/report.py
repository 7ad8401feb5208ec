"""Report image list fed by single photos and burst composites."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Iterator, List, Optional, Union

import numpy as np

from scope_capture.logging_setup import get_logger
from scope_capture.models import CompositeImage, CroppedPhoto
from scope_capture.sources import decode_image, encode_image

# Opaque image enhancement collaborator (e.g. a generative model call).
Enhancer = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class ReportImage:
    """Image attached to the clinical report."""

    id: str
    png: bytes
    timestamp: float
    kind: str = "regular"
    custom_width: Optional[int] = None
    original_png: Optional[bytes] = None
    ai_enhanced: bool = False


class ReportImageList:
    """Ordered images of the report currently being written."""

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or get_logger()
        self._images: List[ReportImage] = []

    def append(self, item: Union[CompositeImage, CroppedPhoto]) -> ReportImage:
        if isinstance(item, CompositeImage):
            entry = ReportImage(
                id=str(uuid.uuid4()),
                png=encode_image(item.image, "png"),
                timestamp=time.time(),
                kind="mosaic",
                custom_width=100,
            )
        elif isinstance(item, CroppedPhoto):
            entry = ReportImage(
                id=str(uuid.uuid4()),
                png=encode_image(item.image, "png"),
                timestamp=time.time(),
            )
        else:
            raise TypeError(f"Cannot add {type(item).__name__} to the report")
        self._images.append(entry)
        self.logger.debug("Added %s image %s to report", entry.kind, entry.id)
        return entry

    def get(self, image_id: str) -> ReportImage:
        for entry in self._images:
            if entry.id == image_id:
                return entry
        raise KeyError(image_id)

    def remove(self, image_id: str) -> None:
        self._images = [entry for entry in self._images if entry.id != image_id]

    def enhance(self, image_id: str, enhancer: Enhancer) -> ReportImage:
        """Replace an image with ``enhancer(image)``, keeping the original."""
        entry = self.get(image_id)
        source = decode_image(entry.original_png or entry.png)
        if source is None:
            raise ValueError(f"Report image {image_id} cannot be decoded")
        enhanced = enhancer(source)
        updated = replace(
            entry,
            png=encode_image(enhanced, "png"),
            original_png=entry.original_png or entry.png,
            ai_enhanced=True,
        )
        self._replace(updated)
        self.logger.info("Enhanced report image %s", image_id)
        return updated

    def revert(self, image_id: str) -> ReportImage:
        entry = self.get(image_id)
        if entry.original_png is None:
            return entry
        updated = replace(entry, png=entry.original_png, original_png=None, ai_enhanced=False)
        self._replace(updated)
        return updated

    def _replace(self, updated: ReportImage) -> None:
        self._images = [updated if entry.id == updated.id else entry for entry in self._images]

    def __iter__(self) -> Iterator[ReportImage]:
        return iter(list(self._images))

    def __len__(self) -> int:
        return len(self._images)


__all__ = ["Enhancer", "ReportImage", "ReportImageList"]
