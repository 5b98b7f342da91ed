"""Utility functions for tracesim.

Simulated-time arithmetic, logger setup and timing helpers.
"""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Generator, Union

from tracesim.types import DAY


# ═══════════════════════════════════════════════════════════════════════
# SIMULATED TIME
# ═══════════════════════════════════════════════════════════════════════

def start_offset(start_date: Union[str, date]) -> int:
    """Epoch seconds of UTC midnight on `start_date`."""
    d = as_date(start_date)
    return int(datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp())


def corrected_time(offset: float, time_of_day: float, iteration: int) -> float:
    """Absolute simulated time (seconds) of `time_of_day` on day `iteration`.

    `offset` is the start offset from start_offset(). It is currently NOT
    added: day 1 refers to the start date, so the intended result would be
    offset + _relative_time(time_of_day, iteration - 1), but all tracing
    arithmetic is calibrated against the plain relative time below.
    """
    return _relative_time(time_of_day, iteration)


def _relative_time(time_of_day: float, iteration: int) -> float:
    return min(time_of_day, DAY) + iteration * DAY


def as_date(value: Union[str, date, datetime]) -> date:
    """Coerce an ISO string, date or datetime to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def date_of_day(start_date: Union[str, date], day: int) -> date:
    """Calendar date of simulated day `day` (day 1 = start_date)."""
    return as_date(start_date) + timedelta(days=day - 1)


# ═══════════════════════════════════════════════════════════════════════
# LOGGING / MISC
# ═══════════════════════════════════════════════════════════════════════

def setup_logger(name: str = 'tracesim', level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to the named logger (idempotent).

    Args:
        name: Logger name; 'tracesim' configures the whole package.
        level: Logging level (int or name such as 'DEBUG').

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    # Avoid duplicate handlers on repeated setup
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    logger.addHandler(handler)
    return logger


@contextmanager
def timer(label: str = "") -> Generator[None, None, None]:
    """Simple context-manager timer. Prints elapsed time on exit."""
    start = time.perf_counter()
    yield
    elapsed = time.perf_counter() - start
    if label:
        print(f"[{label}] {elapsed:.3f}s")
    else:
        print(f"Elapsed: {elapsed:.3f}s")
