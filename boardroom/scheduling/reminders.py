"""
Reminder derivation and persistence

Every booking gets exactly three reminders, timed off its start and end.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from boardroom.db.types import DatabaseInterface
from boardroom.models import Booking, Reminder, ReminderStatus, ReminderType

logger = logging.getLogger(__name__)

STARTS_20_LEAD = timedelta(minutes=20)
ENDING_10_LEAD = timedelta(minutes=10)


@dataclass(frozen=True)
class ReminderTime:
    type: ReminderType
    scheduled_at: datetime


def derive_reminder_times(start_at: datetime, end_at: datetime) -> List[ReminderTime]:
    """Reminder instants for a meeting.

    No check that they lie in the future; the dispatch tick picks up anything
    already due. For meetings shorter than 30 minutes ENDING_10 lands before
    STARTS_20.
    """
    return [
        ReminderTime(ReminderType.STARTS_20, start_at - STARTS_20_LEAD),
        ReminderTime(ReminderType.JOIN_NOW, start_at),
        ReminderTime(ReminderType.ENDING_10, end_at - ENDING_10_LEAD),
    ]


class ReminderScheduler:
    def __init__(self, db: DatabaseInterface):
        self.db = db

    def create_reminders_for_booking(self, booking: Booking) -> List[Reminder]:
        reminders = [
            Reminder(
                id=uuid.uuid4().hex,
                user_id=booking.user_id,
                booking_id=booking.id,
                type=entry.type,
                scheduled_at=entry.scheduled_at,
                status=ReminderStatus.PENDING,
            )
            for entry in derive_reminder_times(booking.start_at, booking.end_at)
        ]
        self.db.insert_reminders(reminders)
        logger.info(
            f"Scheduled {len(reminders)} reminders for booking {booking.id}: "
            + ", ".join(f"{r.type_name}@{r.scheduled_at.isoformat()}" for r in reminders)
        )
        return reminders

    def cancel_reminders_for_booking(self, booking_id: str) -> int:
        """Cancel the booking's PENDING reminders. Safe to call repeatedly."""
        cancelled = self.db.cancel_reminders_for_booking(booking_id)
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending reminders for booking {booking_id}")
        return cancelled

    def fetch_due(self, now: datetime, limit: int) -> List[Reminder]:
        return self.db.list_due_reminders(now, limit)
