"""Fixed-rate burst sampling of a live frame source into numbered files."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from scope_capture.config import BurstSettings
from scope_capture.errors import CaptureError, FramePersistFailure
from scope_capture.logging_setup import get_logger
from scope_capture.models import BurstSession, Frame
from scope_capture.sessions import BurstHistory, burst_frame_filename
from scope_capture.sources import FrameSource, encode_image
from scope_capture.storage import LocalStorage

# Refresh timestamps are floats; tolerate rounding so that e.g. six 60 Hz
# ticks still count as one 10 fps interval.
_CLOCK_EPSILON = 1e-6


class SamplerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class BurstHandle:
    """Live view of a running burst, handed back by :meth:`BurstSampler.start`."""

    session_id: str
    folder_name: str
    started_at: datetime
    target_fps: int
    frames_requested: int = 0
    _frame_count: int = field(default=0, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def frame_count(self) -> int:
        with self._lock:
            return self._frame_count

    def _record_persisted(self) -> None:
        with self._lock:
            self._frame_count += 1


class BurstSampler:
    """Sample a frame source at ``target_fps`` while driven by a refresh clock.

    Every call to :meth:`tick` corresponds to one display refresh. Capture is
    synchronous on the tick; encoding and writing run on a thread pool so a
    slow disk never throttles the sampling cadence.
    """

    def __init__(
        self,
        storage: LocalStorage,
        *,
        settings: Optional[BurstSettings] = None,
        history: Optional[BurstHistory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or BurstSettings()
        self.history = history if history is not None else BurstHistory()
        self.logger = logger or get_logger()

        self.state = SamplerState.IDLE
        self._handle: Optional[BurstHandle] = None
        self._source: Optional[FrameSource] = None
        self._folder: Optional[PurePosixPath] = None
        self._interval = 0.0
        self._last_sample_time: Optional[float] = None
        self._next_index = 1
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def handle(self) -> Optional[BurstHandle]:
        return self._handle if self.state is SamplerState.RUNNING else None

    def start(
        self,
        frame_source: FrameSource,
        target_fps: Optional[int] = None,
        destination_folder: Optional[str] = None,
    ) -> BurstHandle:
        """Validate the destination and begin a burst session.

        Raises ``StorageUnavailable`` when the session folder cannot be
        created or written; no handle is returned in that case.
        """
        with self._lock:
            if self.state is SamplerState.RUNNING:
                raise RuntimeError("A burst session is already running")
            if not destination_folder:
                raise ValueError("A destination folder is required to start a burst")

            fps = max(1, min(60, int(target_fps or self.settings.target_fps)))
            folder = PurePosixPath(destination_folder)
            self.storage.ensure_writable(folder)

            self._handle = BurstHandle(
                session_id=str(uuid.uuid4()),
                folder_name=folder.name,
                started_at=datetime.now(),
                target_fps=fps,
            )
            self._source = frame_source
            self._folder = folder
            self._interval = 1.0 / fps
            self._last_sample_time = None
            self._next_index = 1
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, self.settings.write_workers),
                thread_name_prefix="burst-writer",
            )
            self.state = SamplerState.RUNNING

        self.logger.info("Burst started in '%s' at %s fps", folder, fps)
        return self._handle

    def tick(self, now: float) -> bool:
        """Handle one refresh callback; returns ``True`` when a frame was sampled.

        Ticks that arrive after :meth:`stop` are ignored.
        """
        with self._lock:
            source = self._source
            handle = self._handle
            executor = self._executor
            folder = self._folder
            if (
                self.state is not SamplerState.RUNNING
                or source is None
                or handle is None
                or executor is None
                or folder is None
            ):
                return False
            if (
                self._last_sample_time is not None
                and now - self._last_sample_time + _CLOCK_EPSILON < self._interval
            ):
                return False

            try:
                frame = source.next_frame()
            except CaptureError as exc:
                self.logger.warning("Burst frame grab failed: %s", exc)
                return False

            index = self._next_index
            self._next_index += 1
            self._last_sample_time = now
            handle.frames_requested += 1

            future = executor.submit(self._persist_frame, folder, index, frame)
            future.add_done_callback(lambda done: self._on_persisted(handle, index, done))
        return True

    def stop(self, handle: Optional[BurstHandle] = None) -> BurstSession:
        """Stop sampling, wait for in-flight writes and finalize the session."""
        with self._lock:
            if self.state is not SamplerState.RUNNING or self._handle is None:
                raise RuntimeError("No burst session is running")
            if handle is not None and handle.session_id != self._handle.session_id:
                raise ValueError(f"Handle {handle.session_id} does not belong to the running burst")

            running = self._handle
            executor = self._executor
            self.state = SamplerState.STOPPED
            self._executor = None
            self._source = None

        if executor is not None:
            executor.shutdown(wait=True)

        session = BurstSession(
            id=running.session_id,
            folder_name=running.folder_name,
            started_at=running.started_at,
            frame_count=running.frame_count,
            finished_at=datetime.now(),
        )

        if session.is_empty:
            self.logger.warning(
                "Burst '%s' finished with 0 saved frames (%s requested); session discarded",
                session.folder_name,
                running.frames_requested,
            )
        else:
            self.history.append(session)
            self.logger.info(
                "Burst '%s' finished: %s/%s frames saved",
                session.folder_name,
                session.frame_count,
                running.frames_requested,
            )
        return session

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist_frame(self, folder: PurePosixPath, index: int, frame: Frame) -> PurePosixPath:
        path = folder / burst_frame_filename(index, self.settings.image_format)
        try:
            data = encode_image(
                frame.image,
                self.settings.image_format,
                jpeg_quality=self.settings.jpeg_quality,
            )
            self.storage.write(path, data)
        except (OSError, RuntimeError, ValueError) as exc:
            raise FramePersistFailure(f"Failed to persist burst frame {path}: {exc}") from exc
        return path

    def _on_persisted(self, handle: BurstHandle, index: int, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            self.logger.error("Skipping burst frame %s: %s", index, exc)
            return
        handle._record_persisted()
        self.logger.debug("Saved burst frame %s to %s", index, future.result())


__all__ = ["BurstHandle", "BurstSampler", "SamplerState"]
