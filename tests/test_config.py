import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scope_capture.config import (  # noqa: E402
    WHITE_BGR,
    BurstSettings,
    _parse_background_color,
    _parse_bool,
    _parse_positive_int,
    load_config,
)
from scope_capture.models import MaskShape  # noqa: E402


def test_background_color_parsing_variants():
    assert _parse_background_color("#102030") == (0x30, 0x20, 0x10)
    assert _parse_background_color([10, 20, 30]) == (30, 20, 10)
    assert _parse_background_color({"value": [1, 2, 3], "order": "bgr"}) == (1, 2, 3)
    assert _parse_background_color({"hex": "ff0000"}) == (0, 0, 255)
    assert _parse_background_color([300, -5, 0]) == (0, 0, 255)
    assert _parse_background_color("nonsense") == WHITE_BGR
    assert _parse_background_color(None) == WHITE_BGR


def test_scalar_parsers():
    assert _parse_bool("YES", False) is True
    assert _parse_bool("off", True) is False
    assert _parse_bool(None, True) is True
    assert _parse_positive_int("7", 3) == 7
    assert _parse_positive_int("-1", 3) == 3
    assert _parse_positive_int("abc", 3) == 3


def test_missing_file_falls_back_to_environment(tmp_path):
    env = {
        "SCOPE_STORAGE_DIR": str(tmp_path / "captures"),
        "SCOPE_LOG_FILE": "",
        "SCOPE_DEFAULT_SUBJECT": "Jane",
        "BURST_FPS": "120",
        "BURST_IMAGE_FORMAT": "JPEG",
        "BURST_WRITE_WORKERS": "3",
        "DETECT_THRESHOLD": "40",
        "DETECT_PADDING": "0",
        "AUTO_CROP_ENABLED": "false",
        "KYMOGRAM_MAX_SLICE_HEIGHT": "8",
        "MOSAIC_BACKGROUND_COLOR": "#000000",
    }

    config = load_config(tmp_path / "absent.json", env)

    assert config.global_settings.storage_dir == tmp_path / "captures"
    assert config.global_settings.log_file is None
    assert config.global_settings.default_subject == "Jane"
    assert config.burst.target_fps == 60
    assert config.burst.image_format == "jpg"
    assert config.burst.write_workers == 3
    assert config.detection.threshold == 40
    assert config.detection.padding == 0
    assert config.detection.auto_detect is False
    assert config.mask.active is False
    assert config.mosaic.kymogram_max_slice_height == 8
    assert config.mosaic.background_color == (0, 0, 0)


def test_empty_environment_gives_defaults(tmp_path):
    config = load_config(tmp_path / "absent.json", {})

    assert config.burst.target_fps == BurstSettings().target_fps
    assert config.detection.threshold == 25
    assert config.detection.padding == 20
    assert config.detection.stride == 4
    assert config.mask.active is True
    assert config.mask.shape is MaskShape.ELLIPSE
    assert config.mosaic.background_color == WHITE_BGR
    assert config.mosaic.default_transform.columns == 8


def test_json_config_is_parsed_leniently(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "global_settings": {"storage_dir": "data", "log_file": None},
                "detection": {"threshold": 999, "ellipse_ratio_min": 2.0, "ellipse_ratio_max": 1.0},
                "mask": {"shape": "rect", "x": -50, "min_size": 80},
                "burst": {"target_fps": 0, "image_format": "tiff", "jpeg_quality": 150},
                "mosaic": {
                    "background_color": {"value": [255, 0, 0], "order": "rgb"},
                    "default_transform": {"columns": 4, "crop_height": 1, "scale": -2},
                },
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path, {"BURST_FPS": "30"})

    assert config.global_settings.storage_dir == Path("data")
    assert config.global_settings.log_file is None
    assert config.detection.threshold == 254
    assert (config.detection.ellipse_ratio_min, config.detection.ellipse_ratio_max) == (0.8, 1.2)
    assert config.mask.shape is MaskShape.RECTANGLE
    assert config.mask.x == 0.0
    assert config.mask.min_size == 80
    assert config.burst.target_fps == 15
    assert config.burst.image_format == "jpg"
    assert config.burst.jpeg_quality == 100
    assert config.mosaic.background_color == (0, 0, 255)
    # A non-positive scale invalidates the whole transform.
    assert config.mosaic.default_transform.columns == 8
