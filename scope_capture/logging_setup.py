"""Logging configuration helpers for the scope capture pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

LOGGER_NAME = "scope_capture"
DEFAULT_LOG_FILE = Path("logs") / f"{LOGGER_NAME}.log"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger or one of its children."""
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def _open_file_handler(log_file: Union[str, Path]) -> Tuple[Optional[logging.Handler], Optional[str]]:
    """Open ``log_file`` or a same-named file in the working directory.

    The returned notice explains any fallback.
    """
    requested = Path(log_file)
    if not requested.is_absolute():
        requested = Path.cwd() / requested

    candidates = [requested]
    if requested.parent != Path.cwd():
        candidates.append(Path.cwd() / requested.name)

    failures: List[str] = []
    for candidate in candidates:
        try:
            candidate.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(candidate, encoding="utf-8")
        except OSError as exc:
            failures.append(f"'{candidate}': {exc}")
            continue
        if not failures:
            return handler, None
        return handler, f"Logging to '{candidate}' instead of '{requested}' ({failures[0]})"

    return None, "File logging disabled, no usable log file (" + "; ".join(failures) + ")"


def configure_logging(
    logger_name: Optional[str] = None,
    *,
    level: int = logging.INFO,
    log_file: Union[str, Path, None] = DEFAULT_LOG_FILE,
    include_stream: bool = True,
) -> logging.Logger:
    """Install root handlers for a capture session and return the package logger.

    ``log_file=None`` keeps logs on the console only; ``include_stream=False``
    keeps them in the file only. Calling this again replaces the previous
    handlers.
    """
    handlers: List[logging.Handler] = []
    notice: Optional[str] = None
    if log_file:
        file_handler, notice = _open_file_handler(log_file)
        if file_handler is not None:
            handlers.append(file_handler)
    if include_stream:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers or [logging.NullHandler()], force=True)

    logger = logging.getLogger(logger_name or LOGGER_NAME)
    logger.setLevel(level)
    if notice:
        logger.warning(notice)
    return logger


__all__ = ["configure_logging", "get_logger", "LOGGER_NAME"]
