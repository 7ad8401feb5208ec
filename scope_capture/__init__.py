"""
Scope capture pipeline: lit-area detection, masked single photos, fixed-rate
burst sampling and mosaic/kymogram compositing of endoscope video feeds.
"""

from .cli import main
from .compositor import Compositor, StoredFrameSequence
from .config import Config, load_config
from .detection import RegionDetector
from .errors import (
    CaptureError,
    CompositeCancelled,
    EmptyCompositeInput,
    FrameLoadFailure,
    StorageUnavailable,
)
from .mask import CaptureMask, apply_mask
from .models import BurstSession, CompositeImage, CompositeKind, Frame, MaskShape, MosaicTransform, Region
from .sampler import BurstHandle, BurstSampler
from .station import CaptureStation, ShutterButton

__all__ = [
    "main",
    "BurstHandle",
    "BurstSampler",
    "BurstSession",
    "CaptureError",
    "CaptureMask",
    "CaptureStation",
    "CompositeCancelled",
    "CompositeImage",
    "CompositeKind",
    "Compositor",
    "Config",
    "EmptyCompositeInput",
    "Frame",
    "FrameLoadFailure",
    "MaskShape",
    "MosaicTransform",
    "Region",
    "RegionDetector",
    "ShutterButton",
    "StorageUnavailable",
    "StoredFrameSequence",
    "apply_mask",
    "load_config",
]
