"""
Command line entry points for the scope capture pipeline.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from scope_capture.config import Config, load_config
from scope_capture.errors import CaptureError
from scope_capture.logging_setup import configure_logging
from scope_capture.models import Frame
from scope_capture.scheduler import run_burst
from scope_capture.sources import FrameSource, StillFrameSource, VideoCaptureSource
from scope_capture.station import CaptureStation


def _build_station(args: argparse.Namespace, config: Config, logger: logging.Logger) -> CaptureStation:
    return CaptureStation(
        config,
        subject_name=getattr(args, "subject", None),
        logger=logger,
    )


def _open_source(args: argparse.Namespace, logger: logging.Logger) -> FrameSource:
    if getattr(args, "image", None):
        return StillFrameSource.from_file(args.image)
    source = VideoCaptureSource(args.device, logger=logger)
    source.open()
    return source


def _close_source(source: FrameSource) -> None:
    if isinstance(source, VideoCaptureSource):
        source.close()


def detect_command(args: argparse.Namespace, config: Config, logger: logging.Logger) -> int:
    station = _build_station(args, config, logger)
    frame: Frame = StillFrameSource.from_file(args.image).next_frame()
    region = station.detector.detect(frame)
    if region is None:
        logger.warning("No usable scope area found in %s", args.image)
        return 1
    logger.info(
        "Scope area: x=%s y=%s width=%s height=%s shape=%s",
        region.x,
        region.y,
        region.width,
        region.height,
        region.shape.value,
    )
    return 0


def photo_command(args: argparse.Namespace, config: Config, logger: logging.Logger) -> int:
    station = _build_station(args, config, logger)
    source = _open_source(args, logger)
    try:
        frame = source.next_frame()
        if args.detect:
            station.detect_scope_area(frame)
        else:
            station.on_stream_started(frame)
        image = station.take_single_photo(frame)
    finally:
        _close_source(source)
    logger.info("Captured photo %s (%s bytes PNG)", image.id, len(image.png))
    return 0


def burst_command(args: argparse.Namespace, config: Config, logger: logging.Logger) -> int:
    station = _build_station(args, config, logger)
    source = _open_source(args, logger)
    try:
        session = run_burst(
            station,
            source,
            args.duration,
            refresh_hz=args.refresh_hz,
            target_fps=args.fps,
        )
    finally:
        _close_source(source)
    if session.is_empty:
        logger.error("Burst produced no frames; check write access to %s", station.storage.root)
        return 1
    logger.info("Burst saved %s frames to %s", session.frame_count, session.folder_name)
    return 0


def sessions_command(args: argparse.Namespace, config: Config, logger: logging.Logger) -> int:
    station = _build_station(args, config, logger)
    station.refresh_history()
    if not len(station.history):
        logger.info("No burst sessions found in %s", station.storage.root)
        return 0
    for session in station.history:
        logger.info(
            "%s  %s frames  (started %s)",
            session.folder_name,
            session.frame_count,
            session.started_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return 0


def compose_command(args: argparse.Namespace, config: Config, logger: logging.Logger) -> int:
    station = _build_station(args, config, logger)
    overrides = {
        name: value
        for name, value in (
            ("rotation_degrees", args.rotation),
            ("scale", args.scale),
            ("pan_x", args.pan_x),
            ("pan_y", args.pan_y),
            ("crop_width", args.crop_width),
            ("crop_height", args.crop_height),
            ("columns", args.columns),
            ("gap_x", args.gap_x),
            ("gap_y", args.gap_y),
        )
        if value is not None
    }
    transform = replace(config.mosaic.default_transform, **overrides)
    result = station.compose_burst(args.folder, transform)
    logger.info(
        "Built %s %sx%s from %s frames%s",
        result.composite.kind.value,
        result.composite.width,
        result.composite.height,
        result.composite.frame_count,
        f", saved to {result.saved_path}" if result.saved_path else "",
    )
    return 0


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--device",
        default=0,
        type=int,
        help="Video device index to read from (default: 0).",
    )
    source.add_argument(
        "--image",
        help="Use a still image as the live feed instead of a camera.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scope image capture, burst sampling and mosaic/kymogram tools.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to the JSON configuration (default: config.json; falls back to environment).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    detect_parser = subparsers.add_parser("detect", help="Find the lit scope area in an image.")
    detect_parser.add_argument("image", help="Image file to scan.")

    photo_parser = subparsers.add_parser("photo", help="Capture a single masked photo.")
    photo_parser.add_argument("--subject", help="Subject name used in file names.")
    photo_parser.add_argument(
        "--detect",
        action="store_true",
        help="Force scope area detection before capturing.",
    )
    _add_source_arguments(photo_parser)

    burst_parser = subparsers.add_parser("burst", help="Record a burst of raw frames.")
    burst_parser.add_argument("--subject", help="Subject name used in the burst folder name.")
    burst_parser.add_argument(
        "--duration",
        type=float,
        default=2.0,
        help="Burst length in seconds (default: 2).",
    )
    burst_parser.add_argument("--fps", type=int, help="Frames per second to sample (1-60).")
    burst_parser.add_argument("--refresh-hz", type=int, help="Refresh clock rate driving the sampler.")
    _add_source_arguments(burst_parser)

    subparsers.add_parser("sessions", help="List burst sessions found in storage.")

    compose_parser = subparsers.add_parser(
        "compose",
        help="Build a mosaic or kymogram from a burst folder.",
    )
    compose_parser.add_argument("folder", help="Burst folder name inside the storage directory.")
    compose_parser.add_argument("--subject", help="Subject name used in the output file name.")
    compose_parser.add_argument("--rotation", type=float, help="Rotation in degrees.")
    compose_parser.add_argument("--scale", type=float, help="Uniform scale factor.")
    compose_parser.add_argument("--pan-x", type=float, help="Horizontal pan in pixels.")
    compose_parser.add_argument("--pan-y", type=float, help="Vertical pan in pixels.")
    compose_parser.add_argument("--crop-width", type=int, help="Slice width in pixels.")
    compose_parser.add_argument(
        "--crop-height",
        type=int,
        help="Slice height in pixels; with --columns 1 a very thin slice builds a kymogram.",
    )
    compose_parser.add_argument("--columns", type=int, help="Mosaic columns.")
    compose_parser.add_argument("--gap-x", type=int, help="Horizontal gap between tiles.")
    compose_parser.add_argument("--gap-y", type=int, help="Vertical gap between tiles.")

    return parser


COMMANDS = {
    "detect": detect_command,
    "photo": photo_command,
    "burst": burst_command,
    "sessions": sessions_command,
    "compose": compose_command,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)
    logger = configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=config.global_settings.log_file,
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.error(f"Unhandled command: {args.command}")
        return 2

    try:
        return handler(args, config, logger)
    except (CaptureError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
