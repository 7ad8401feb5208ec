"""Frame sources and raster codec helpers."""

from __future__ import annotations

import logging
from time import monotonic
from typing import Callable, Optional, Protocol, Union

import cv2
import numpy as np

from scope_capture.errors import FrameSourceError
from scope_capture.logging_setup import get_logger
from scope_capture.models import Frame

Clock = Callable[[], float]


class FrameSource(Protocol):
    """Anything that can hand out the current live frame."""

    def next_frame(self) -> Frame:
        """Return the most recent frame at native resolution."""


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode PNG/JPEG bytes into a BGR or BGRA array, ``None`` when invalid."""
    if not data:
        return None
    buffer = np.frombuffer(data, dtype=np.uint8)
    try:
        return cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    except cv2.error:
        return None


def encode_image(image: np.ndarray, extension: str = "png", *, jpeg_quality: int = 95) -> bytes:
    """Encode an array to PNG or JPEG bytes."""
    ext = extension.lower().lstrip(".")
    params = []
    if ext in ("jpg", "jpeg"):
        if image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        params = [int(cv2.IMWRITE_JPEG_QUALITY), int(jpeg_quality)]
    try:
        success, buffer = cv2.imencode(f".{ext}", image, params)
    except cv2.error as exc:
        raise RuntimeError(f"Failed to encode {image.shape} image as {ext}: {exc}") from exc
    if not success:
        raise RuntimeError(f"Failed to encode {image.shape} image as {ext}")
    return buffer.tobytes()


class StillFrameSource:
    """Replay one image as a live feed, stamping each frame with the clock."""

    def __init__(self, image: np.ndarray, *, clock: Clock = monotonic) -> None:
        self._image = np.array(image, copy=True)
        self._image.setflags(write=False)
        self._clock = clock

    @classmethod
    def from_file(cls, path: str, *, clock: Clock = monotonic) -> "StillFrameSource":
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise FrameSourceError(f"Failed to read image {path}")
        return cls(image, clock=clock)

    def next_frame(self) -> Frame:
        return Frame(image=self._image, timestamp=self._clock())


class VideoCaptureSource:
    """Live camera device read through ``cv2.VideoCapture``."""

    def __init__(
        self,
        device: Union[int, str] = 0,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        clock: Clock = monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.device = device
        self.width = width
        self.height = height
        self._clock = clock
        self.logger = logger or get_logger()
        self._capture: Optional[cv2.VideoCapture] = None

    def open(self) -> None:
        if self._capture is not None:
            return
        capture = cv2.VideoCapture(self.device)
        if not capture.isOpened():
            capture.release()
            raise FrameSourceError(f"Unable to open video device {self.device!r}")
        if self.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        self.logger.info(
            "Opened video device %r at %sx%s",
            self.device,
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def next_frame(self) -> Frame:
        if self._capture is None:
            self.open()
        assert self._capture is not None
        success, image = self._capture.read()
        if not success or image is None:
            raise FrameSourceError(f"Failed to read a frame from device {self.device!r}")
        return Frame(image=image, timestamp=self._clock())

    def __enter__(self) -> "VideoCaptureSource":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = [
    "FrameSource",
    "StillFrameSource",
    "VideoCaptureSource",
    "decode_image",
    "encode_image",
]
