"""Progress logging for long frame batches (composites over large bursts)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from time import perf_counter
from typing import Optional


def _format_duration(seconds: float) -> str:
    whole = int(round(seconds))
    if whole <= 0:
        return "<1s"
    minutes, rest = divmod(whole, 60)
    return f"{minutes}m{rest:02d}s" if minutes else f"{rest}s"


def eta_string(elapsed: float, completed: int, total: int) -> str:
    """Remaining time for ``total`` items, extrapolated from the current pace."""
    if elapsed <= 0.0 or not 0 < completed <= total:
        return "ETA estimating"
    remaining = elapsed / completed * (total - completed)
    finish = datetime.now() + timedelta(seconds=remaining)
    return f"ETA {_format_duration(remaining)} (finish {finish:%H:%M:%S})"


class ProgressLog:
    """Log ``completed/total`` roughly every 5% of a batch."""

    def __init__(self, logger: logging.Logger, label: str, total: int, *, steps: int = 20) -> None:
        self.logger = logger
        self.label = label
        self.total = total
        self.interval = max(1, total // max(1, steps))
        self._started: Optional[float] = None

    def update(self, completed: int) -> None:
        if self._started is None:
            self._started = perf_counter()
        if completed % self.interval != 0 and completed != self.total:
            return
        percent = (completed / self.total) * 100.0 if self.total else 100.0
        elapsed = perf_counter() - self._started
        self.logger.info(
            "%s: %s/%s frames (%0.1f%%, %s)",
            self.label,
            completed,
            self.total,
            percent,
            eta_string(elapsed, completed, self.total),
        )


__all__ = ["ProgressLog", "eta_string"]
