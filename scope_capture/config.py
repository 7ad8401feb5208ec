"""Configuration dataclasses and loading helpers for the scope capture pipeline."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from scope_capture.models import MaskShape, MosaicTransform

WHITE_BGR: Tuple[int, int, int] = (255, 255, 255)
SUPPORTED_FRAME_FORMATS = ("jpg", "png")


def _default_write_workers() -> int:
    """Determine a sensible default for concurrent burst frame writers."""
    return max(1, min(4, os.cpu_count() or 1))


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_non_negative_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a floating point number with fallback to default."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_clamped_int(value: Any, default: int, low: int, high: int) -> int:
    parsed = _parse_positive_int(value, default)
    return max(low, min(high, parsed))


def _parse_shape(value: Any, default: MaskShape) -> MaskShape:
    if isinstance(value, MaskShape):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        # "circle" and "rect" are the names older settings files used.
        if text in {"ellipse", "circle"}:
            return MaskShape.ELLIPSE
        if text in {"rectangle", "rect"}:
            return MaskShape.RECTANGLE
    return default


def _parse_frame_format(value: Any, default: str) -> str:
    if not isinstance(value, str):
        return default
    text = value.strip().lower().lstrip(".")
    if text == "jpeg":
        text = "jpg"
    return text if text in SUPPORTED_FRAME_FORMATS else default


def _parse_background_color(value: Any, default: Tuple[int, int, int] = WHITE_BGR) -> Tuple[int, int, int]:
    """Parse and clamp colour definitions to BGR tuples."""

    def _clamp_triplet(triplet: Any) -> Optional[Tuple[int, int, int]]:
        if not isinstance(triplet, (list, tuple)) or len(triplet) != 3:
            return None
        try:
            return tuple(
                max(0, min(255, int(channel)))
                for channel in triplet
            )
        except (TypeError, ValueError):
            return None

    if isinstance(value, dict):
        if "hex" in value and isinstance(value["hex"], str):
            return _parse_background_color(value["hex"], default)
        if "value" in value:
            channels = _clamp_triplet(value["value"])
            if channels is None:
                return default
            order = str(value.get("order") or "rgb").lower()
            if order == "bgr":
                return channels
            if order == "rgb":
                return (channels[2], channels[1], channels[0])
            return default

    if isinstance(value, (list, tuple)):
        channels = _clamp_triplet(value)
        if channels is None:
            return default
        return (channels[2], channels[1], channels[0])

    if isinstance(value, str):
        hex_value = value.strip().lstrip("#")
        if len(hex_value) == 6:
            try:
                r = int(hex_value[0:2], 16)
                g = int(hex_value[2:4], 16)
                b = int(hex_value[4:6], 16)
                return (b, g, r)
            except ValueError:
                return default

    return default


@dataclass(frozen=True)
class DetectionSettings:
    """Tunables of the illuminated-region scan."""

    threshold: int = 25
    padding: int = 20
    stride: int = 4
    min_region_size: int = 50
    ellipse_ratio_min: float = 0.8
    ellipse_ratio_max: float = 1.2
    auto_detect: bool = True


@dataclass(frozen=True)
class MaskSettings:
    """Initial capture mask geometry and limits."""

    x: float = 100.0
    y: float = 100.0
    width: float = 400.0
    height: float = 400.0
    shape: MaskShape = MaskShape.ELLIPSE
    active: bool = True
    min_size: int = 50


@dataclass(frozen=True)
class BurstSettings:
    """Settings for burst sampling and persistence."""

    target_fps: int = 15
    refresh_hz: int = 60
    image_format: str = "jpg"
    jpeg_quality: int = 95
    write_workers: int = field(default_factory=_default_write_workers)
    long_press_seconds: float = 1.0


@dataclass(frozen=True)
class MosaicSettings:
    """Settings for burst compositing."""

    kymogram_max_slice_height: int = 5
    background_color: Tuple[int, int, int] = WHITE_BGR
    default_transform: MosaicTransform = field(default_factory=MosaicTransform)


@dataclass(frozen=True)
class GlobalSettings:
    """Top-level settings shared by every capture screen."""

    storage_dir: Path = Path("captures")
    log_file: Optional[Path] = Path("logs") / "scope_capture.log"
    default_subject: str = ""


@dataclass(frozen=True)
class Config:
    """Root configuration object for the scope capture pipeline."""

    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    mask: MaskSettings = field(default_factory=MaskSettings)
    burst: BurstSettings = field(default_factory=BurstSettings)
    mosaic: MosaicSettings = field(default_factory=MosaicSettings)


def _parse_detection_settings(raw: Mapping[str, Any]) -> DetectionSettings:
    default = DetectionSettings()
    if not isinstance(raw, Mapping):
        return default
    ratio_min = _parse_float(raw.get("ellipse_ratio_min"), default.ellipse_ratio_min)
    ratio_max = _parse_float(raw.get("ellipse_ratio_max"), default.ellipse_ratio_max)
    if ratio_min <= 0 or ratio_max < ratio_min:
        ratio_min, ratio_max = default.ellipse_ratio_min, default.ellipse_ratio_max
    return DetectionSettings(
        threshold=_parse_clamped_int(raw.get("threshold"), default.threshold, 1, 254),
        padding=_parse_non_negative_int(raw.get("padding"), default.padding),
        stride=_parse_positive_int(raw.get("stride"), default.stride),
        min_region_size=_parse_positive_int(raw.get("min_region_size"), default.min_region_size),
        ellipse_ratio_min=ratio_min,
        ellipse_ratio_max=ratio_max,
        auto_detect=_parse_bool(raw.get("auto_detect"), default.auto_detect),
    )


def _parse_mask_settings(raw: Mapping[str, Any]) -> MaskSettings:
    default = MaskSettings()
    if not isinstance(raw, Mapping):
        return default
    return MaskSettings(
        x=max(0.0, _parse_float(raw.get("x"), default.x)),
        y=max(0.0, _parse_float(raw.get("y"), default.y)),
        width=max(1.0, _parse_float(raw.get("width"), default.width)),
        height=max(1.0, _parse_float(raw.get("height"), default.height)),
        shape=_parse_shape(raw.get("shape"), default.shape),
        active=_parse_bool(raw.get("active"), default.active),
        min_size=_parse_positive_int(raw.get("min_size"), default.min_size),
    )


def _parse_burst_settings(raw: Mapping[str, Any]) -> BurstSettings:
    default = BurstSettings()
    if not isinstance(raw, Mapping):
        return default
    return BurstSettings(
        target_fps=_parse_clamped_int(raw.get("target_fps"), default.target_fps, 1, 60),
        refresh_hz=_parse_positive_int(raw.get("refresh_hz"), default.refresh_hz),
        image_format=_parse_frame_format(raw.get("image_format"), default.image_format),
        jpeg_quality=_parse_clamped_int(raw.get("jpeg_quality"), default.jpeg_quality, 1, 100),
        write_workers=_parse_positive_int(raw.get("write_workers"), default.write_workers),
        long_press_seconds=max(0.0, _parse_float(raw.get("long_press_seconds"), default.long_press_seconds)),
    )


def _parse_transform(raw: Any) -> MosaicTransform:
    default = MosaicTransform()
    if not isinstance(raw, Mapping):
        return default
    transform = MosaicTransform(
        rotation_degrees=_parse_float(raw.get("rotation_degrees"), default.rotation_degrees),
        scale=_parse_float(raw.get("scale"), default.scale),
        pan_x=_parse_float(raw.get("pan_x"), default.pan_x),
        pan_y=_parse_float(raw.get("pan_y"), default.pan_y),
        crop_width=_parse_positive_int(raw.get("crop_width"), default.crop_width),
        crop_height=_parse_positive_int(raw.get("crop_height"), default.crop_height),
        columns=_parse_positive_int(raw.get("columns"), default.columns),
        gap_x=_parse_non_negative_int(raw.get("gap_x"), default.gap_x),
        gap_y=_parse_non_negative_int(raw.get("gap_y"), default.gap_y),
    )
    if transform.scale <= 0:
        return default
    return transform


def _parse_mosaic_settings(raw: Mapping[str, Any]) -> MosaicSettings:
    default = MosaicSettings()
    if not isinstance(raw, Mapping):
        return default
    return MosaicSettings(
        kymogram_max_slice_height=_parse_positive_int(
            raw.get("kymogram_max_slice_height"),
            default.kymogram_max_slice_height,
        ),
        background_color=_parse_background_color(raw.get("background_color"), default.background_color),
        default_transform=_parse_transform(raw.get("default_transform")),
    )


def _parse_global_settings(data: Mapping[str, Any]) -> GlobalSettings:
    default = GlobalSettings()
    if not isinstance(data, Mapping):
        return default
    raw_log_file = data.get("log_file", default.log_file)
    return GlobalSettings(
        storage_dir=Path(data.get("storage_dir", default.storage_dir)),
        log_file=Path(raw_log_file) if raw_log_file else None,
        default_subject=str(data.get("default_subject", default.default_subject) or ""),
    )


def _load_env_config(env: Mapping[str, str]) -> Config:
    """Fallback configuration derived from environment variables."""
    global_settings = _parse_global_settings({
        "storage_dir": env.get("SCOPE_STORAGE_DIR", "captures"),
        "log_file": env.get("SCOPE_LOG_FILE", str(GlobalSettings().log_file)),
        "default_subject": env.get("SCOPE_DEFAULT_SUBJECT", ""),
    })

    detection = _parse_detection_settings({
        "threshold": env.get("DETECT_THRESHOLD"),
        "padding": env.get("DETECT_PADDING"),
        "stride": env.get("DETECT_STRIDE"),
        "auto_detect": env.get("AUTO_CROP_ENABLED"),
    })

    mask = _parse_mask_settings({
        "active": env.get("AUTO_CROP_ENABLED"),
    })

    burst = _parse_burst_settings({
        "target_fps": env.get("BURST_FPS"),
        "refresh_hz": env.get("BURST_REFRESH_HZ"),
        "image_format": env.get("BURST_IMAGE_FORMAT"),
        "jpeg_quality": env.get("BURST_JPEG_QUALITY"),
        "write_workers": env.get("BURST_WRITE_WORKERS"),
    })

    mosaic = _parse_mosaic_settings({
        "kymogram_max_slice_height": env.get("KYMOGRAM_MAX_SLICE_HEIGHT"),
        "background_color": env.get("MOSAIC_BACKGROUND_COLOR"),
    })

    return Config(
        global_settings=global_settings,
        detection=detection,
        mask=mask,
        burst=burst,
        mosaic=mosaic,
    )


def load_config(config_path: Path | str, env: Mapping[str, str] | None = None) -> Config:
    """Load configuration from JSON file or environment defaults."""
    source_env = env if env is not None else os.environ
    path = Path(config_path)

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, Mapping):
            data = {}
        return Config(
            global_settings=_parse_global_settings(data.get("global_settings", {})),
            detection=_parse_detection_settings(data.get("detection", {})),
            mask=_parse_mask_settings(data.get("mask", {})),
            burst=_parse_burst_settings(data.get("burst", {})),
            mosaic=_parse_mosaic_settings(data.get("mosaic", {})),
        )

    return _load_env_config(source_env)


__all__ = [
    "BurstSettings",
    "Config",
    "DetectionSettings",
    "GlobalSettings",
    "MaskSettings",
    "MosaicSettings",
    "load_config",
    "_parse_background_color",
    "_parse_bool",
    "_parse_positive_int",
]
