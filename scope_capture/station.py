"""
Capture station facade for the scope capture pipeline.
Wires region detection, the capture mask, burst sampling and compositing
around one storage root and one report.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from time import perf_counter
from typing import Optional, Union

from dotenv import load_dotenv

from scope_capture.compositor import Compositor, StoredFrameSequence
from scope_capture.config import Config, load_config
from scope_capture.detection import RegionDetector
from scope_capture.editor import MosaicEditor
from scope_capture.errors import EmptyCompositeInput
from scope_capture.logging_setup import get_logger
from scope_capture.mask import CaptureMask, MaskInteraction, apply_mask
from scope_capture.models import (
    BurstSession,
    CompositeImage,
    CroppedPhoto,
    Frame,
    MosaicTransform,
    Region,
)
from scope_capture.report import ReportImage, ReportImageList
from scope_capture.sampler import BurstHandle, BurstSampler
from scope_capture.sessions import (
    BurstHistory,
    burst_folder_name,
    composite_filename,
    discover_sessions,
    list_frame_files,
    photo_filename,
)
from scope_capture.sources import FrameSource, encode_image
from scope_capture.storage import LocalStorage

load_dotenv()


@dataclass(frozen=True)
class ComposeResult:
    """Outcome of composing a burst session."""

    composite: CompositeImage
    report_image: ReportImage
    saved_path: Optional[PurePosixPath]


class CaptureStation:
    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        config_file: str = "config.json",
        storage: Optional[LocalStorage] = None,
        subject_name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config if config is not None else load_config(config_file)
        self.logger = logger or get_logger()
        settings = self.config.global_settings
        self.subject_name = subject_name if subject_name is not None else settings.default_subject

        self.storage = storage or LocalStorage(settings.storage_dir, logger=self.logger)
        self.detector = RegionDetector(self.config.detection, logger=self.logger)
        self.history = BurstHistory()
        self.sampler = BurstSampler(
            self.storage,
            settings=self.config.burst,
            history=self.history,
            logger=self.logger,
        )
        self.compositor = Compositor(self.config.mosaic, logger=self.logger)
        self.report = ReportImageList(logger=self.logger)
        self.mask: Optional[CaptureMask] = None

    # ------------------------------------------------------------------
    # Capture mask
    # ------------------------------------------------------------------

    def ensure_mask(self, frame: Frame) -> CaptureMask:
        """Return the mask for ``frame``'s resolution, creating it on first use."""
        if self.mask is None:
            self.mask = CaptureMask.from_settings(self.config.mask, frame.width, frame.height)
        elif (self.mask.frame_width, self.mask.frame_height) != (frame.width, frame.height):
            self.logger.info(
                "Frame size changed to %sx%s; re-clamping capture mask",
                frame.width,
                frame.height,
            )
            self.mask.set_frame_size(frame.width, frame.height)
        return self.mask

    def mask_interaction(self, frame: Frame, display_size: tuple) -> MaskInteraction:
        return MaskInteraction(self.ensure_mask(frame), display_size)

    def on_stream_started(self, frame: Frame) -> Optional[Region]:
        """Seed the mask for a new stream, auto-detecting when enabled."""
        mask = self.ensure_mask(frame)
        if self.config.detection.auto_detect and mask.active:
            return self.detect_scope_area(frame)
        return None

    def detect_scope_area(self, frame: Frame) -> Optional[Region]:
        """Fit the mask to the lit area; an inconclusive scan keeps the current mask."""
        mask = self.ensure_mask(frame)
        region = self.detector.detect(frame)
        if region is None:
            self.logger.info("Auto-detection uncertain, keeping current mask %s", mask)
            return None
        mask.set_from_region(region)
        self.logger.info(
            "Detected scope area %sx%s at (%s, %s) as %s",
            region.width,
            region.height,
            region.x,
            region.y,
            region.shape.value,
        )
        return region

    # ------------------------------------------------------------------
    # Single photo
    # ------------------------------------------------------------------

    def take_single_photo(self, frame: Frame, *, when: Optional[datetime] = None) -> ReportImage:
        """Store the raw frame and add the masked photo to the report."""
        when = when or datetime.now()
        raw_path = PurePosixPath(photo_filename(self.subject_name, when))
        try:
            self.storage.write(
                raw_path,
                encode_image(frame.image, "jpg", jpeg_quality=self.config.burst.jpeg_quality),
            )
        except (OSError, RuntimeError) as exc:
            self.logger.error("Failed to save photo %s: %s", raw_path, exc)

        mask = self.ensure_mask(frame)
        if mask.active:
            photo = apply_mask(frame, mask, logger=self.logger)
        else:
            photo = CroppedPhoto(image=frame.image, timestamp=frame.timestamp, shape=None)
        return self.report.append(photo)

    # ------------------------------------------------------------------
    # Burst
    # ------------------------------------------------------------------

    @property
    def is_bursting(self) -> bool:
        return self.sampler.handle is not None

    def start_burst(
        self,
        source: FrameSource,
        *,
        target_fps: Optional[int] = None,
        when: Optional[datetime] = None,
    ) -> BurstHandle:
        folder = burst_folder_name(self.subject_name, when or datetime.now())
        return self.sampler.start(source, target_fps or self.config.burst.target_fps, folder)

    def tick(self, now: Optional[float] = None) -> bool:
        return self.sampler.tick(perf_counter() if now is None else now)

    def stop_burst(self) -> BurstSession:
        return self.sampler.stop()

    def refresh_history(self) -> int:
        """Add burst folders found in storage that the history does not know yet."""
        added = 0
        for session in discover_sessions(self.storage):
            if self.history.find(session.folder_name) is None:
                self.history.append(session)
                added += 1
        if added:
            self.logger.info("Recovered %s burst sessions from %s", added, self.storage.root)
        return added

    # ------------------------------------------------------------------
    # Compositing
    # ------------------------------------------------------------------

    def open_editor(
        self,
        session: Union[BurstSession, str],
        *,
        display_size: Optional[tuple] = None,
    ) -> MosaicEditor:
        """Load the first frame of a burst into a fresh mosaic editor."""
        folder = self._session_folder(session)
        frames = StoredFrameSequence(self.storage, list_frame_files(self.storage, folder))
        if len(frames) == 0:
            raise EmptyCompositeInput(f"Burst folder '{folder}' holds no images")
        return MosaicEditor(
            frames[0],
            self.compositor,
            transform=self.config.mosaic.default_transform,
            display_size=display_size,
        )

    def compose_burst(
        self,
        session: Union[BurstSession, str],
        transform: Optional[MosaicTransform] = None,
        *,
        cancel: Optional[threading.Event] = None,
        when: Optional[datetime] = None,
    ) -> ComposeResult:
        """Compose a stopped burst, save the PNG and add it to the report."""
        folder = self._session_folder(session)
        if self.is_bursting and self.sampler.handle.folder_name == folder.name:
            raise RuntimeError(f"Burst '{folder}' is still being recorded")

        composite = self.compositor.compose_folder(
            self.storage,
            folder,
            transform or self.config.mosaic.default_transform,
            cancel=cancel,
        )

        output_path: Optional[PurePosixPath] = PurePosixPath(
            composite_filename(self.subject_name, when or datetime.now())
        )
        try:
            self.storage.write(output_path, encode_image(composite.image, "png"))
            self.logger.info("Saved %s composite to %s", composite.kind.value, output_path)
        except (OSError, RuntimeError) as exc:
            self.logger.error("Composite added to report but not saved to %s: %s", output_path, exc)
            output_path = None

        report_image = self.report.append(composite)
        return ComposeResult(composite=composite, report_image=report_image, saved_path=output_path)

    @staticmethod
    def _session_folder(session: Union[BurstSession, str]) -> PurePosixPath:
        if isinstance(session, BurstSession):
            return PurePosixPath(session.folder_name)
        return PurePosixPath(session)


class ShutterButton:
    """Photo key behaviour: tap for a photo, hold to burst.

    ``press`` arms the long-press timer, ``poll`` starts the burst once the
    key has been held for ``long_press_seconds`` and ``release`` stops a
    running burst or, when none is running, takes a single photo.
    """

    def __init__(
        self,
        station: CaptureStation,
        source: FrameSource,
        *,
        long_press_seconds: Optional[float] = None,
    ) -> None:
        self.station = station
        self.source = source
        if long_press_seconds is None:
            long_press_seconds = station.config.burst.long_press_seconds
        self.long_press_seconds = long_press_seconds
        self._pressed_at: Optional[float] = None

    @property
    def is_pressed(self) -> bool:
        return self._pressed_at is not None

    def press(self, now: float) -> None:
        if self._pressed_at is None:
            self._pressed_at = now

    def poll(self, now: float) -> bool:
        """Start the burst once the hold is long enough; ``True`` when started."""
        if self._pressed_at is None or self.station.is_bursting:
            return False
        if now - self._pressed_at < self.long_press_seconds:
            return False
        self.station.start_burst(self.source)
        return True

    def release(self) -> Union[BurstSession, ReportImage, None]:
        pressed_at = self._pressed_at
        self._pressed_at = None
        if self.station.is_bursting:
            return self.station.stop_burst()
        if pressed_at is None:
            return None
        return self.station.take_single_photo(self.source.next_frame())


__all__ = ["CaptureStation", "ComposeResult", "ShutterButton"]
