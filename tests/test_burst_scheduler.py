import logging
import sys
import threading
import time
from pathlib import Path
from unittest.mock import patch

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import scope_capture.scheduler as scheduler_module  # noqa: E402
from apscheduler.triggers.interval import IntervalTrigger  # noqa: E402
from scope_capture.config import Config, GlobalSettings  # noqa: E402
from scope_capture.models import BurstSession, Frame  # noqa: E402
from scope_capture.sources import StillFrameSource  # noqa: E402
from scope_capture.station import CaptureStation  # noqa: E402


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeScheduler:
    """Runs the tick job a fixed number of times as soon as it is started."""

    def __init__(self, clock: FakeClock, refresh_hz: int, ticks: int, interrupt: bool = False):
        self.clock = clock
        self.refresh_hz = refresh_hz
        self.ticks = ticks
        self.interrupt = interrupt
        self.jobs = {}
        self.running = False
        self.shutdown_calls = []

    def add_job(self, func, trigger, id=None, name=None, max_instances=None, coalesce=None):
        self.jobs[id] = {
            "func": func,
            "trigger": trigger,
            "name": name,
            "max_instances": max_instances,
            "coalesce": coalesce,
        }

    def start(self):
        if self.interrupt:
            raise KeyboardInterrupt
        self.running = True
        for tick in range(1, self.ticks):
            self.clock.now = tick / self.refresh_hz
            self.jobs["burst_tick"]["func"]()

    def shutdown(self, wait=True):
        self.shutdown_calls.append(wait)
        self.running = False


class SlowSource(StillFrameSource):
    """Still source whose grabs take longer than a refresh interval."""

    def __init__(self, image: np.ndarray, delay: float):
        super().__init__(image)
        self.delay = delay

    def next_frame(self) -> Frame:
        time.sleep(self.delay)
        return super().next_frame()


def build_station(tmp_path: Path) -> CaptureStation:
    config = Config(global_settings=GlobalSettings(storage_dir=tmp_path, log_file=None))
    return CaptureStation(config, subject_name="Kym", logger=logging.getLogger("scheduler-tests"))


def still_image() -> np.ndarray:
    return np.full((24, 32, 3), 200, dtype=np.uint8)


def source() -> StillFrameSource:
    return StillFrameSource(still_image())


def scheduler_errors(caplog):
    return [
        record
        for record in caplog.records
        if record.name.startswith("apscheduler") and record.levelno >= logging.ERROR
    ]


def saved_frames(station: CaptureStation, session: BurstSession):
    return [entry.name for entry in station.storage.list(session.folder_name)]


def test_run_burst_ticks_at_refresh_rate_until_duration(tmp_path):
    station = build_station(tmp_path)
    clock = FakeClock()
    fake_scheduler = FakeScheduler(clock, refresh_hz=60, ticks=60)
    finished = threading.Event()
    finished.set()

    with patch.object(scheduler_module, "BackgroundScheduler", return_value=fake_scheduler):
        session = scheduler_module.run_burst(
            station,
            source(),
            1.0,
            refresh_hz=60,
            target_fps=10,
            clock=clock,
            stop_event=finished,
        )

    tick_job = fake_scheduler.jobs["burst_tick"]
    assert isinstance(tick_job["trigger"], IntervalTrigger)
    assert abs(tick_job["trigger"].interval.total_seconds() - 1 / 60) < 1e-4
    assert tick_job["max_instances"] == 1
    assert tick_job["coalesce"] is True
    assert list(fake_scheduler.jobs) == ["burst_tick"]

    assert fake_scheduler.shutdown_calls == [True]
    assert session.frame_count == 10
    assert not station.is_bursting
    assert station.history.latest() == session


def test_run_burst_interrupted_still_finalizes(tmp_path):
    station = build_station(tmp_path)
    fake_scheduler = FakeScheduler(FakeClock(), refresh_hz=60, ticks=0, interrupt=True)

    with patch.object(scheduler_module, "BackgroundScheduler", return_value=fake_scheduler):
        session = scheduler_module.run_burst(station, source(), 5.0, target_fps=10, clock=FakeClock())

    assert session.frame_count == 1
    assert fake_scheduler.shutdown_calls == []
    assert not station.is_bursting


def test_run_burst_with_live_scheduler_returns_session(tmp_path, caplog):
    station = build_station(tmp_path)

    with caplog.at_level(logging.INFO):
        session = scheduler_module.run_burst(
            station,
            source(),
            0.6,
            refresh_hz=60,
            target_fps=5,
        )

    assert isinstance(session, BurstSession)
    assert 2 <= session.frame_count <= 4
    assert saved_frames(station, session) == [
        f"IMG_{index:04d}.jpg" for index in range(1, session.frame_count + 1)
    ]
    assert not station.is_bursting
    assert scheduler_errors(caplog) == []


def test_run_burst_with_live_scheduler_and_slow_source(tmp_path, caplog):
    station = build_station(tmp_path)
    slow = SlowSource(still_image(), delay=0.05)

    with caplog.at_level(logging.INFO):
        session = scheduler_module.run_burst(
            station,
            slow,
            0.4,
            refresh_hz=60,
            target_fps=60,
        )

    assert isinstance(session, BurstSession)
    assert 1 <= session.frame_count <= 12
    assert saved_frames(station, session) == [
        f"IMG_{index:04d}.jpg" for index in range(1, session.frame_count + 1)
    ]
    assert not station.is_bursting
    assert scheduler_errors(caplog) == []


def test_run_burst_stops_early_when_event_is_set(tmp_path, caplog):
    station = build_station(tmp_path)
    stop_event = threading.Event()
    timer = threading.Timer(0.2, stop_event.set)

    started = time.perf_counter()
    timer.start()
    try:
        with caplog.at_level(logging.INFO):
            session = scheduler_module.run_burst(
                station,
                source(),
                30.0,
                refresh_hz=60,
                target_fps=10,
                stop_event=stop_event,
            )
    finally:
        timer.cancel()

    assert time.perf_counter() - started < 5.0
    assert session.frame_count >= 1
    assert scheduler_errors(caplog) == []
