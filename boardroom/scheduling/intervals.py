"""Pure interval helpers. All intervals are half-open: ``[start, end)``."""

from datetime import datetime, timedelta
from typing import Optional

from boardroom.models import TimeInterval


def overlaps(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """True iff the two ranges share at least one instant. Touching ends don't count."""
    return a_start < b_end and a_end > b_start


def plus_minutes(instant: datetime, minutes: int) -> datetime:
    return instant + timedelta(minutes=minutes)


def shift_end(interval: TimeInterval, minutes: int) -> TimeInterval:
    """Return a copy of ``interval`` whose end is pushed out by ``minutes``."""
    return TimeInterval(interval.start, plus_minutes(interval.end, minutes))


def clamp(interval: TimeInterval, bounds: TimeInterval) -> Optional[TimeInterval]:
    """Cut ``interval`` down to ``bounds``; None when nothing is left."""
    start = max(interval.start, bounds.start)
    end = min(interval.end, bounds.end)
    if start >= end:
        return None
    return TimeInterval(start, end)
