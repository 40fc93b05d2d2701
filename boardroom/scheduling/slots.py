"""
Free gap and slot computation

Turns a day's busy events into the free parts of the work window, then
snaps those gaps into fixed-size slots for tap-to-book UIs.
"""

from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Any, Dict, Iterable, List

from boardroom.models import BusyEvent, TimeInterval, WorkWindow
from boardroom.scheduling.intervals import clamp


@dataclass(frozen=True)
class DayAvailability:
    work_window: WorkWindow
    free_gaps: List[TimeInterval]
    free_slots: List[TimeInterval]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_window": self.work_window.to_dict(),
            "free_gaps": [gap.to_dict() for gap in self.free_gaps],
            "free_slots": [slot.to_dict() for slot in self.free_slots],
        }


def compute_free_gaps(
    work_window: WorkWindow, events: Iterable[BusyEvent]
) -> List[TimeInterval]:
    """Maximal intervals of the work window not covered by any event.

    Events may be unordered, overlapping, or reach outside the window.
    """
    # sorted() is stable, so same-start events keep their input order
    ordered = sorted(events, key=lambda e: e.start)

    blocks = []
    for event in ordered:
        block = clamp(event.interval, work_window)
        if block is not None:
            blocks.append(block)

    gaps: List[TimeInterval] = []
    cursor = work_window.start
    for block in blocks:
        if cursor < block.start:
            gaps.append(TimeInterval(cursor, block.start))
        cursor = max(cursor, block.end)

    if cursor < work_window.end:
        gaps.append(TimeInterval(cursor, work_window.end))

    return gaps


def split_into_slots(
    gaps: Iterable[TimeInterval], slot_minutes: int
) -> List[TimeInterval]:
    """Left-aligned ``slot_minutes`` chunks of each gap; short remainders are dropped.

    Steps in UTC so slots keep their real length across DST changes, then
    reports them in the gap's own timezone.
    """
    step = timedelta(minutes=slot_minutes)
    slots: List[TimeInterval] = []
    for gap in gaps:
        tz = gap.start.tzinfo
        current = gap.start.astimezone(timezone.utc)
        end = gap.end.astimezone(timezone.utc)
        while current + step <= end:
            slots.append(
                TimeInterval(current.astimezone(tz), (current + step).astimezone(tz))
            )
            current += step
    return slots


def compute_free_slots(
    work_window: WorkWindow, events: Iterable[BusyEvent], slot_minutes: int
) -> DayAvailability:
    gaps = compute_free_gaps(work_window, events)
    return DayAvailability(
        work_window=work_window,
        free_gaps=gaps,
        free_slots=split_into_slots(gaps, slot_minutes),
    )
