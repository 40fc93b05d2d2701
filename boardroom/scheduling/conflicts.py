"""Buffered conflict detection against existing calendar events."""

import logging
from typing import Iterable, Optional

from boardroom.models import BusyEvent, TimeInterval
from boardroom.scheduling.intervals import overlaps, plus_minutes

logger = logging.getLogger(__name__)


def find_conflict(
    candidate: TimeInterval,
    existing_events: Iterable[BusyEvent],
    buffer_minutes: int,
) -> Optional[BusyEvent]:
    """Return the first event that clashes with ``candidate``, in input order.

    Each existing event is treated as occupying ``buffer_minutes`` past its
    end, so a new booking can start no earlier than that. The candidate's own
    end is not buffered.
    """
    for event in existing_events:
        buffered_end = plus_minutes(event.end, buffer_minutes)
        if overlaps(candidate.start, candidate.end, event.start, buffered_end):
            logger.debug(
                f"Candidate {candidate.start.isoformat()} clashes with '{event.title}' "
                f"(buffered until {buffered_end.isoformat()})"
            )
            return event
    return None
