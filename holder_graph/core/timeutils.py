"""
Time-Related Utilities
----------------------

All timestamps in the package are timezone-aware UTC datetimes. Components
that make freshness decisions take a `Clock` (a zero-argument callable
returning "now") so tests can move time without patching the module.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_utc(dt: datetime) -> str:
    """Canonical ISO-8601 text for a timestamp, e.g. '2024-05-01T12:00:00+00:00'."""
    return to_utc(dt).isoformat()


def format_timestamp(dt: datetime) -> str:
    """Human readable form used in rendered headers and chat messages."""
    return to_utc(dt).strftime("%Y-%m-%d %H:%M:%S UTC")


def window(hours: float) -> timedelta:
    return timedelta(hours=hours)


class ManualClock:
    """A settable clock for tests and replays."""

    def __init__(self, start: datetime):
        self.now = to_utc(start)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        """Move forward by a `timedelta(**kwargs)` and return the new time."""
        self.now = self.now + timedelta(**kwargs)
        return self.now
