from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from boardroom.models import Booking, BookingStatus, Reminder, Room, User


class DuplicateRoomError(ValueError):
    """Raised when a room name is already taken."""


class DatabaseInterface(ABC):
    """Storage for users, rooms, bookings and their reminders."""

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    # Users

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def upsert_user(self, user: User) -> User:
        pass

    # Rooms

    @abstractmethod
    def list_rooms(self) -> list[Room]:
        pass

    @abstractmethod
    def get_room(self, room_id: str) -> Optional[Room]:
        pass

    @abstractmethod
    def create_room(
        self, name: str, capacity: int, location: str = "", notes: str = ""
    ) -> Room:
        pass

    @abstractmethod
    def update_room(self, room_id: str, changes: dict[str, Any]) -> Optional[Room]:
        pass

    @abstractmethod
    def delete_room(self, room_id: str) -> bool:
        pass

    # Bookings

    @abstractmethod
    def insert_booking(self, booking: Booking) -> Booking:
        pass

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    def list_bookings_for_user(self, user_id: str, limit: int = 200) -> list[Booking]:
        pass

    @abstractmethod
    def list_bookings(
        self,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[Booking]:
        pass

    @abstractmethod
    def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        pass

    @abstractmethod
    def delete_booking(self, booking_id: str) -> bool:
        pass

    # Reminders

    @abstractmethod
    def insert_reminders(self, reminders: list[Reminder]) -> None:
        """Insert all reminders or none of them."""
        pass

    @abstractmethod
    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        pass

    @abstractmethod
    def list_due_reminders(self, now: datetime, limit: int) -> list[Reminder]:
        """PENDING reminders with ``scheduled_at <= now``, oldest first."""
        pass

    @abstractmethod
    def list_reminders_for_user(
        self, user_id: str, upcoming_after: Optional[datetime] = None, limit: int = 200
    ) -> list[Reminder]:
        """All of a user's reminders, or only PENDING ones at/after ``upcoming_after``."""
        pass

    @abstractmethod
    def mark_reminder_sent(
        self, reminder_id: str, sent_at: datetime, meta: dict[str, Any]
    ) -> bool:
        """PENDING -> SENT. Returns False if the reminder was no longer pending."""
        pass

    @abstractmethod
    def mark_reminder_failed(
        self, reminder_id: str, failed_at: datetime, error: str, meta: dict[str, Any]
    ) -> bool:
        """PENDING -> FAILED. Returns False if the reminder was no longer pending."""
        pass

    @abstractmethod
    def cancel_reminders_for_booking(self, booking_id: str) -> int:
        """PENDING -> CANCELLED for one booking. Returns how many changed."""
        pass
