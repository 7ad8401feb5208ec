import json
import logging
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scope_capture import cli  # noqa: E402
from scope_capture.sources import decode_image  # noqa: E402

FOLDER = "2024-05-01_Jane_Doe_BURST_103000"


@pytest.fixture
def workspace(tmp_path):
    storage_dir = tmp_path / "captures"
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "global_settings": {"storage_dir": str(storage_dir), "log_file": None},
                "burst": {"target_fps": 10},
            }
        ),
        encoding="utf-8",
    )
    yield tmp_path, storage_dir, config_path
    logging.getLogger().handlers.clear()


def write_scope_image(path: Path) -> None:
    image = np.zeros((400, 400, 3), dtype=np.uint8)
    image[150:250, 150:250] = 255
    assert cv2.imwrite(str(path), image)


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_detect_command(workspace):
    tmp_path, _, config_path = workspace
    image_path = tmp_path / "scope.png"
    write_scope_image(image_path)
    dark_path = tmp_path / "dark.png"
    assert cv2.imwrite(str(dark_path), np.zeros((100, 100, 3), dtype=np.uint8))

    assert cli.main(["--config", str(config_path), "detect", str(image_path)]) == 0
    assert cli.main(["--config", str(config_path), "detect", str(dark_path)]) == 1


def test_photo_command_from_image(workspace):
    tmp_path, storage_dir, config_path = workspace
    image_path = tmp_path / "scope.png"
    write_scope_image(image_path)

    code = cli.main(["--config", str(config_path), "photo", "--subject", "Jane Doe", "--image", str(image_path)])

    assert code == 0
    assert len(list(storage_dir.glob("*_Jane_Doe_FOTO_*.jpg"))) == 1


def test_compose_and_sessions_commands(workspace):
    tmp_path, storage_dir, config_path = workspace
    burst_dir = storage_dir / FOLDER
    burst_dir.mkdir(parents=True)
    for index in range(1, 7):
        frame = np.full((60, 80, 3), index * 30, dtype=np.uint8)
        assert cv2.imwrite(str(burst_dir / f"IMG_{index:04d}.png"), frame)

    assert cli.main(["--config", str(config_path), "sessions"]) == 0

    code = cli.main(
        [
            "--config",
            str(config_path),
            "compose",
            FOLDER,
            "--subject",
            "Jane Doe",
            "--crop-width",
            "40",
            "--crop-height",
            "30",
            "--columns",
            "3",
            "--gap-x",
            "5",
        ]
    )

    assert code == 0
    outputs = list(storage_dir.glob("*_Jane_Doe_MOSAICO.png"))
    assert len(outputs) == 1
    composite = decode_image(outputs[0].read_bytes())
    assert composite.shape[:2] == (60, 40 * 3 + 5 * 2)


def test_compose_missing_folder_reports_failure(workspace):
    _, _, config_path = workspace
    assert cli.main(["--config", str(config_path), "compose", "no-such-burst"]) == 1


def test_compose_rejects_invalid_transform(workspace):
    _, storage_dir, config_path = workspace
    burst_dir = storage_dir / FOLDER
    burst_dir.mkdir(parents=True)
    assert cv2.imwrite(str(burst_dir / "IMG_0001.png"), np.zeros((10, 10, 3), dtype=np.uint8))

    assert cli.main(["--config", str(config_path), "compose", FOLDER, "--scale", "0"]) == 1
