"""Business-hours window for a calendar date in the configured timezone."""

from datetime import date, datetime, timedelta
from typing import Union
from zoneinfo import ZoneInfo

from boardroom.config import WorkingHoursConfig
from boardroom.models import TimeInterval, WorkWindow


def parse_date(value: Union[date, str]) -> date:
    """Accept a ``date`` or a strict ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date '{value}'. Expected YYYY-MM-DD")


def day_range(day: Union[date, str], tz: ZoneInfo) -> TimeInterval:
    """The whole local day ``[00:00, next 00:00)`` as aware instants."""
    day = parse_date(day)
    start = datetime.combine(day, datetime.min.time(), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    return TimeInterval(start, end)


def build_work_window(
    day: Union[date, str], working_hours: WorkingHoursConfig, tz: ZoneInfo
) -> WorkWindow:
    """Anchor the configured ``HH:MM`` work hours to ``day`` in ``tz``.

    Working hours are validated when configuration is loaded, so the result is
    always well formed.
    """
    day = parse_date(day)
    start = datetime.combine(day, working_hours.start_time, tzinfo=tz)
    end = datetime.combine(day, working_hours.end_time, tzinfo=tz)
    return TimeInterval(start, end)
