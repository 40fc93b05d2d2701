"""Entities shared by the scheduling core, storage and the HTTP layer."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union


class BookingStatus(Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class ReminderType(Enum):
    STARTS_20 = "STARTS_20"
    JOIN_NOW = "JOIN_NOW"
    ENDING_10 = "ENDING_10"

    @classmethod
    def parse(cls, value: str) -> Union["ReminderType", str]:
        """Return the matching member, or the raw value for types this build doesn't know."""
        try:
            return cls(value)
        except ValueError:
            return value


class ReminderStatus(Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not ReminderStatus.PENDING


class UserRole(Enum):
    USER = "USER"
    ADMIN = "ADMIN"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "UserRole":
        if value and value.strip().upper() == "ADMIN":
            return cls.ADMIN
        return cls.USER


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval ``[start, end)`` between two timezone-aware instants."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError(
                f"Interval start must be before end (start: {self.start.isoformat()}, end: {self.end.isoformat()})"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


# Same shape, different meaning: the bookable part of one calendar day.
WorkWindow = TimeInterval


@dataclass(frozen=True)
class BusyEvent:
    """An occupied interval read from the external calendar."""

    title: str
    interval: TimeInterval
    source_id: Optional[str] = None
    meeting_link: Optional[str] = None

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "source_id": self.source_id,
            "meeting_link": self.meeting_link,
            **self.interval.to_dict(),
        }


@dataclass
class User:
    id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    def describe(self) -> str:
        return f"{self.name or 'user'} ({self.email or 'no-email'}, {self.phone or 'no-phone'})"


@dataclass
class Room:
    id: str
    name: str
    capacity: int
    is_active: bool = True
    location: str = ""
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "capacity": self.capacity,
            "is_active": self.is_active,
            "location": self.location,
            "notes": self.notes,
        }


@dataclass
class Booking:
    id: str
    user_id: str
    attendee_count: int
    team_name: str
    duration_minutes: int
    start_at: datetime
    end_at: datetime
    external_event_id: str
    room_id: Optional[str] = None
    meeting_title: str = ""
    meeting_link: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: Optional[datetime] = None

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_at, self.end_at)

    @property
    def display_title(self) -> str:
        if self.meeting_title:
            return f"{self.team_name} — {self.meeting_title}"
        return self.team_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "room_id": self.room_id,
            "attendee_count": self.attendee_count,
            "team_name": self.team_name,
            "meeting_title": self.meeting_title,
            "duration_minutes": self.duration_minutes,
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat(),
            "meeting_link": self.meeting_link,
            "status": self.status.value,
            "external_event_id": self.external_event_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Reminder:
    id: str
    user_id: str
    booking_id: str
    type: Union[ReminderType, str]
    scheduled_at: datetime
    status: ReminderStatus = ReminderStatus.PENDING
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, ReminderType) else str(self.type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "booking_id": self.booking_id,
            "type": self.type_name,
            "scheduled_at": self.scheduled_at.isoformat(),
            "status": self.status.value,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "last_error": self.last_error,
            "meta": self.meta,
        }
