"""Refresh-clock driver for live burst captures."""

from __future__ import annotations

import threading
from time import perf_counter
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from scope_capture.models import BurstSession
from scope_capture.sources import FrameSource


def run_burst(
    station: Any,
    source: FrameSource,
    duration_seconds: float,
    *,
    refresh_hz: Optional[int] = None,
    target_fps: Optional[int] = None,
    clock: Callable[[], float] = perf_counter,
    stop_event: Optional[threading.Event] = None,
) -> BurstSession:
    """Run a burst for ``duration_seconds`` ticking at the display refresh rate.

    The sampler decides on each tick whether a frame is due, so the tick rate
    only bounds timing resolution. Setting ``stop_event`` or pressing Ctrl+C
    ends the burst early; the stopped session is returned either way. No tick
    is still running when the session is finalized.
    """
    refresh_hz = refresh_hz or station.config.burst.refresh_hz
    stop_event = stop_event or threading.Event()
    handle = station.start_burst(source, target_fps=target_fps)

    scheduler = BackgroundScheduler()

    def _tick() -> None:
        station.tick(clock())

    scheduler.add_job(
        _tick,
        trigger=IntervalTrigger(seconds=1.0 / refresh_hz),
        id="burst_tick",
        name="Burst Tick",
        max_instances=1,
        coalesce=True,
    )

    station.logger.info(
        "Burst '%s' running for %ss at %s fps (refresh %s Hz)",
        handle.folder_name,
        duration_seconds,
        handle.target_fps,
        refresh_hz,
    )

    try:
        _tick()
        scheduler.start()
        if not stop_event.wait(duration_seconds):
            station.logger.info("Burst duration of %ss reached", duration_seconds)
    except (KeyboardInterrupt, SystemExit):
        station.logger.info("Burst interrupted")
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=True)
        session = station.stop_burst()

    return session


__all__ = ["run_burst"]
