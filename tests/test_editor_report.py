import logging
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scope_capture.compositor import Compositor  # noqa: E402
from scope_capture.editor import MosaicEditor  # noqa: E402
from scope_capture.models import (  # noqa: E402
    CompositeImage,
    CompositeKind,
    CroppedPhoto,
    Frame,
    MosaicTransform,
)
from scope_capture.report import ReportImageList  # noqa: E402
from scope_capture.sources import decode_image  # noqa: E402


def build_editor(display_size=(300, 300)) -> MosaicEditor:
    frame = Frame(image=np.full((240, 320, 3), 90, dtype=np.uint8), timestamp=0.0)
    compositor = Compositor(logger=logging.getLogger("editor-tests"))
    return MosaicEditor(frame, compositor, display_size=display_size)


def test_update_validates_and_keeps_previous_transform():
    editor = build_editor()

    editor.update(rotation_degrees=15, columns=1, crop_height=2)
    assert editor.is_kymogram

    with pytest.raises(ValueError):
        editor.update(scale=0)
    with pytest.raises(TypeError):
        editor.update(zoom=2)

    assert editor.transform.scale == 1.0
    assert editor.transform.rotation_degrees == 15


def test_pan_drag_is_rescaled_to_preview_pixels():
    editor = build_editor(display_size=(300, 300))

    editor.press((100, 100))
    editor.drag((110, 105))
    editor.drag((115, 105))
    editor.release()
    transform = editor.drag((500, 500))

    assert (transform.pan_x, transform.pan_y) == (30.0, 10.0)


def test_reset_restores_default_transform():
    editor = build_editor()
    editor.update(scale=2.5, gap_x=4)
    editor.press((0, 0))

    assert editor.reset() == MosaicTransform()
    assert not editor.tracker.is_dragging


def test_preview_matches_preview_size():
    editor = build_editor()
    assert editor.preview().shape == (600, 600, 3)


def mosaic(width: int = 30, height: int = 20) -> CompositeImage:
    return CompositeImage(
        image=np.full((height, width, 3), 255, dtype=np.uint8),
        kind=CompositeKind.TILE_GRID,
        frame_count=2,
    )


def photo() -> CroppedPhoto:
    return CroppedPhoto(image=np.zeros((10, 10, 4), dtype=np.uint8), timestamp=1.0, shape=None)


def test_report_append_marks_mosaics():
    report = ReportImageList()

    regular = report.append(photo())
    wide = report.append(mosaic())

    assert regular.kind == "regular" and regular.custom_width is None
    assert wide.kind == "mosaic" and wide.custom_width == 100
    assert [entry.id for entry in report] == [regular.id, wide.id]
    assert decode_image(wide.png).shape == (20, 30, 3)

    with pytest.raises(TypeError):
        report.append(np.zeros((2, 2, 3), dtype=np.uint8))


def test_report_enhance_and_revert():
    report = ReportImageList()
    entry = report.append(mosaic())

    enhanced = report.enhance(entry.id, lambda image: 255 - image)
    assert enhanced.ai_enhanced
    assert enhanced.original_png == entry.png
    assert np.all(decode_image(enhanced.png) == 0)

    # Enhancing twice starts from the original again.
    twice = report.enhance(entry.id, lambda image: image // 2)
    assert np.all(decode_image(twice.png) == 127)

    reverted = report.revert(entry.id)
    assert reverted.png == entry.png
    assert not reverted.ai_enhanced
    assert report.get(entry.id) == reverted


def test_report_remove():
    report = ReportImageList()
    entry = report.append(photo())

    report.remove(entry.id)

    assert len(report) == 0
    with pytest.raises(KeyError):
        report.get(entry.id)
