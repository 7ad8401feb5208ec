import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scope_capture.config import DetectionSettings  # noqa: E402
from scope_capture.detection import RegionDetector  # noqa: E402
from scope_capture.models import Frame, MaskShape  # noqa: E402


def make_frame(width: int, height: int, lit: tuple[int, int, int, int] | None = None, value: int = 255) -> Frame:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    if lit is not None:
        x, y, w, h = lit
        image[y:y + h, x:x + w] = value
    return Frame(image=image, timestamp=0.0)


def test_all_dark_frame_is_inconclusive():
    detector = RegionDetector()
    assert detector.detect(make_frame(400, 400)) is None


def test_pixels_at_threshold_are_not_lit():
    detector = RegionDetector()
    frame = make_frame(400, 400, lit=(100, 100, 200, 200), value=25)
    assert detector.detect(frame) is None


def test_small_lit_area_is_inconclusive():
    detector = RegionDetector()
    # 10px block plus padding stays under the minimum region size.
    frame = make_frame(400, 400, lit=(100, 100, 10, 10))
    assert detector.detect(frame) is None


def test_white_square_is_detected_with_padding_as_ellipse():
    detector = RegionDetector()
    region = detector.detect(make_frame(400, 400, lit=(150, 150, 100, 100)))

    assert region is not None
    assert region.shape is MaskShape.ELLIPSE
    for actual, expected in zip((region.x, region.y, region.width, region.height), (130, 130, 140, 140)):
        assert abs(actual - expected) <= 4


def test_ratio_classification_without_padding():
    detector = RegionDetector(DetectionSettings(padding=0, stride=1))

    square = detector.detect(make_frame(400, 400, lit=(100, 100, 100, 100)))
    wide = detector.detect(make_frame(600, 400, lit=(100, 100, 200, 100)))

    assert square is not None and square.shape is MaskShape.ELLIPSE
    assert wide is not None and wide.shape is MaskShape.RECTANGLE
    assert abs(wide.width / wide.height - 2.0) < 0.05


def test_fully_lit_frame_is_clamped_to_frame_bounds():
    detector = RegionDetector()
    region = detector.detect(make_frame(400, 300, lit=(0, 0, 400, 300)))

    assert region is not None
    assert (region.x, region.y, region.width, region.height) == (0, 0, 400, 300)
    assert region.shape is MaskShape.RECTANGLE


def test_brightness_uses_brightest_channel_only():
    detector = RegionDetector()
    image = np.zeros((200, 200, 3), dtype=np.uint8)
    image[40:160, 40:160, 2] = 200  # red channel only
    region = detector.detect(Frame(image=image, timestamp=0.0))

    assert region is not None
    assert region.shape is MaskShape.ELLIPSE


def test_threshold_is_configurable():
    frame = make_frame(400, 400, lit=(100, 100, 200, 200), value=60)

    assert RegionDetector().detect(frame) is not None
    assert RegionDetector(DetectionSettings(threshold=80)).detect(frame) is None
