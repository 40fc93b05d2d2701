"""
Booking orchestration

Ties the scheduling core to its collaborators: the calendar that owns busy
events, storage, and notifications. Day views, booking creation with buffered
conflict checks, cancellation and listings live here.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from boardroom.config import ServerConfig
from boardroom.db.types import DatabaseInterface
from boardroom.models import (
    Booking,
    BookingStatus,
    BusyEvent,
    Reminder,
    TimeInterval,
    User,
)
from boardroom.notifications import Notifier
from boardroom.scheduling.conflicts import find_conflict
from boardroom.scheduling.reminders import ReminderScheduler
from boardroom.scheduling.slots import DayAvailability, compute_free_slots
from boardroom.scheduling.work_window import build_work_window, day_range, parse_date

logger = logging.getLogger(__name__)


class BookingValidationError(ValueError):
    """The booking request is malformed or breaks a booking rule."""


class BookingNotFoundError(LookupError):
    pass


class BookingPermissionError(PermissionError):
    pass


class Calendar(Protocol):
    def list_events(self, time_min: datetime, time_max: datetime) -> List[BusyEvent]:
        ...

    def create_event(
        self, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> str:
        ...

    def delete_event(self, event_id: str) -> None:
        ...


@dataclass(frozen=True)
class BookingRequest:
    start_at: datetime
    duration_minutes: int
    attendee_count: int
    team_name: str
    meeting_title: str = ""
    meeting_link: Optional[str] = None
    room_id: Optional[str] = None


@dataclass
class BookingResult:
    booking: Optional[Booking] = None
    conflict: Optional[BusyEvent] = None
    reminders: List[Reminder] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.booking is not None


@dataclass
class CancelResult:
    booking: Booking
    deleted: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DayView:
    day: date
    booked: List[BusyEvent]
    availability: DayAvailability

    def to_dict(self, include_titles: bool = True) -> Dict[str, Any]:
        if include_titles:
            booked = [event.to_dict() for event in self.booked]
        else:
            booked = [event.interval.to_dict() for event in self.booked]
        return {
            "date": self.day.isoformat(),
            "booked": booked,
            **self.availability.to_dict(),
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    def __init__(
        self,
        config: ServerConfig,
        db: DatabaseInterface,
        calendar: Calendar,
        notifier: Notifier,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.db = db
        self.calendar = calendar
        self.notifier = notifier
        self.clock = clock
        self.reminders = ReminderScheduler(db)

    def day_view(self, day: Union[date, str]) -> DayView:
        """Busy events, free gaps and free slots for one local calendar day."""
        day = parse_date(day)
        tz = self.config.tz
        whole_day = day_range(day, tz)
        events = self.calendar.list_events(whole_day.start, whole_day.end)
        work_window = build_work_window(day, self.config.working_hours, tz)
        availability = compute_free_slots(
            work_window, events, self.config.booking.slot_minutes
        )
        return DayView(day=day, booked=events, availability=availability)

    def localize(self, instant: datetime) -> datetime:
        """Naive datetimes are read as business-local wall-clock times."""
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self.config.tz)
        return instant

    def validate_request(self, request: BookingRequest, now: datetime) -> TimeInterval:
        """Check booking rules and return the requested interval."""
        rules = self.config.booking

        if not request.team_name or not request.team_name.strip():
            raise BookingValidationError("team_name is required")
        if request.attendee_count < 1:
            raise BookingValidationError("attendee_count must be >= 1")
        if request.duration_minutes < rules.min_duration_minutes:
            raise BookingValidationError(
                f"duration_minutes must be >= {rules.min_duration_minutes}"
            )

        start = self.localize(request.start_at)
        earliest = now + timedelta(minutes=rules.buffer_minutes)
        if start < earliest:
            raise BookingValidationError(
                f"Start time must be at least {rules.buffer_minutes} minute(s) from now "
                f"(earliest allowed: {earliest.astimezone(self.config.tz).isoformat()})"
            )

        if request.room_id:
            room = self.db.get_room(request.room_id)
            if not room:
                raise BookingValidationError(f"Room not found: {request.room_id}")
            if not room.is_active:
                raise BookingValidationError(f"Room '{room.name}' is not active")

        return TimeInterval(start, start + timedelta(minutes=request.duration_minutes))

    def create_booking(self, user: User, request: BookingRequest) -> BookingResult:
        """Book the room for ``user``.

        A clash with an existing (buffered) event comes back as
        ``BookingResult.conflict`` with nothing written. Calendar failures
        propagate and abort the booking. Confirmation delivery is best effort.
        """
        now = self.clock()
        candidate = self.validate_request(request, now)

        lookaround = timedelta(hours=self.config.booking.conflict_lookaround_hours)
        existing = self.calendar.list_events(
            candidate.start - lookaround, candidate.end + lookaround
        )
        conflict = find_conflict(candidate, existing, self.config.booking.buffer_minutes)
        if conflict:
            logger.info(
                f"Booking request by {user.id} at {candidate.start.isoformat()} "
                f"clashes with '{conflict.title}'"
            )
            return BookingResult(conflict=conflict)

        team_name = request.team_name.strip()
        meeting_title = (request.meeting_title or "").strip()
        draft = Booking(
            id=uuid.uuid4().hex,
            user_id=user.id,
            room_id=request.room_id,
            attendee_count=request.attendee_count,
            team_name=team_name,
            meeting_title=meeting_title,
            duration_minutes=request.duration_minutes,
            start_at=candidate.start,
            end_at=candidate.end,
            meeting_link=request.meeting_link or None,
            external_event_id="",
        )

        description = f"Meeting Link: {draft.meeting_link}" if draft.meeting_link else ""
        draft.external_event_id = self.calendar.create_event(
            draft.display_title, candidate.start, candidate.end, description
        )

        booking = self.db.insert_booking(draft)
        logger.info(
            f"Booking created: {booking.display_title} ({booking.attendee_count} people) | "
            f"{booking.start_at.isoformat()} - {booking.end_at.isoformat()}"
        )

        reminders = self.reminders.create_reminders_for_booking(booking)
        warnings = self.notifier.send_booking_confirmation(user, booking)
        return BookingResult(booking=booking, reminders=reminders, warnings=warnings)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.db.get_booking(booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking not found: {booking_id}")
        return booking

    def cancel_booking(self, user: User, booking_id: str) -> CancelResult:
        """Owners soft-cancel; admins hard-delete.

        Calendar cleanup and reminder cancellation are best effort and report
        through ``warnings``.
        """
        booking = self.get_booking(booking_id)
        if booking.user_id != user.id and not user.is_admin:
            raise BookingPermissionError("Only the owner or an admin can cancel a booking")

        if not user.is_admin and booking.status is BookingStatus.CANCELLED:
            return CancelResult(booking=booking)

        warnings: List[str] = []
        if booking.external_event_id:
            try:
                self.calendar.delete_event(booking.external_event_id)
            except Exception as e:
                logger.warning(f"Calendar delete failed for booking {booking.id}: {e}")
                warnings.append(f"Calendar event not deleted: {e}")

        try:
            self.reminders.cancel_reminders_for_booking(booking.id)
        except Exception as e:
            logger.warning(f"Reminder cancellation failed for booking {booking.id}: {e}")
            warnings.append(f"Reminders not cancelled: {e}")

        if user.is_admin:
            self.db.delete_booking(booking.id)
            logger.info(f"Booking {booking.id} deleted by admin {user.id}")
            return CancelResult(booking=booking, deleted=True, warnings=warnings)

        updated = self.db.update_booking_status(booking.id, BookingStatus.CANCELLED)
        logger.info(f"Booking {booking.id} cancelled by {user.id}")
        return CancelResult(booking=updated or booking, warnings=warnings)

    def list_user_bookings(self, user_id: str, limit: int = 200) -> List[Booking]:
        return self.db.list_bookings_for_user(user_id, limit=limit)

    def list_all_bookings(
        self,
        date_from: Optional[Union[date, str]] = None,
        date_to: Optional[Union[date, str]] = None,
    ) -> List[Booking]:
        """Every booking, optionally limited to local days ``date_from``..``date_to`` inclusive."""
        tz = self.config.tz
        time_min = day_range(date_from, tz).start if date_from else None
        time_max = day_range(date_to, tz).end if date_to else None
        return self.db.list_bookings(time_min=time_min, time_max=time_max)

    def list_user_reminders(self, user_id: str, upcoming: bool = False) -> List[Reminder]:
        after = self.clock() if upcoming else None
        return self.db.list_reminders_for_user(user_id, upcoming_after=after)
