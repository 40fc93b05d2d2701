from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from boardroom.config import DatabaseBackend, DatabaseConfig, PostgresConfig
from boardroom.db import schema
from boardroom.db.types import DatabaseInterface, DuplicateRoomError
from boardroom.models import (
    Booking,
    BookingStatus,
    Reminder,
    ReminderStatus,
    ReminderType,
    Room,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)

ROOM_FIELDS = ("name", "capacity", "is_active", "location", "notes")


def new_id() -> str:
    return uuid.uuid4().hex


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=row["id"],
        name=row.get("name") or "",
        email=row.get("email"),
        phone=row.get("phone"),
        role=UserRole.from_string(row.get("role")),
    )


def _row_to_room(row: dict[str, Any]) -> Room:
    return Room(
        id=row["id"],
        name=row["name"],
        capacity=row["capacity"],
        is_active=row["is_active"],
        location=row.get("location") or "",
        notes=row.get("notes") or "",
    )


def _row_to_booking(row: dict[str, Any]) -> Booking:
    return Booking(
        id=row["id"],
        user_id=row["user_id"],
        room_id=row.get("room_id"),
        attendee_count=row["attendee_count"],
        team_name=row["team_name"],
        meeting_title=row.get("meeting_title") or "",
        duration_minutes=row["duration_minutes"],
        start_at=row["start_at"],
        end_at=row["end_at"],
        meeting_link=row.get("meeting_link"),
        status=BookingStatus(row["status"]),
        external_event_id=row["external_event_id"],
        created_at=row.get("created_at"),
    )


def _row_to_reminder(row: dict[str, Any]) -> Reminder:
    return Reminder(
        id=row["id"],
        user_id=row["user_id"],
        booking_id=row["booking_id"],
        type=ReminderType.parse(row["type"]),
        scheduled_at=row["scheduled_at"],
        status=ReminderStatus(row["status"]),
        sent_at=row.get("sent_at"),
        failed_at=row.get("failed_at"),
        last_error=row.get("last_error"),
        meta=row.get("meta") or {},
    )


class PostgresDatabase(DatabaseInterface):
    def __init__(self, config: PostgresConfig):
        super().__init__()
        self.config = config
        self._pool: Any = None

    def initialize(self) -> None:
        from psycopg.rows import dict_row
        from psycopg_pool import ConnectionPool

        logger.info(
            f"Connecting to PostgreSQL at {self.config.host}:{self.config.port}/{self.config.database}"
        )
        self._pool = ConnectionPool(
            self.config.connection_string,
            min_size=1,
            max_size=10,
            kwargs={"row_factory": dict_row},
        )

        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                schema.initialize_schema(cur)
                schema.create_indexes(cur)
                conn.commit()

    @contextmanager
    def connection(self) -> Iterator[Any]:
        if not self._pool:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        with self._pool.connection() as conn:
            yield conn

    def close(self) -> None:
        if self._pool:
            self._pool.close()
            self._pool = None

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[dict[str, Any]]:
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()

    def _execute(self, sql: str, params: tuple = ()) -> int:
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rowcount = cur.rowcount
            conn.commit()
            return rowcount

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._fetchone("SELECT * FROM users WHERE id = %s", (user_id,))
        return _row_to_user(row) if row else None

    def upsert_user(self, user: User) -> User:
        self._execute(
            """
            INSERT INTO users (id, name, email, phone, role)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                name = EXCLUDED.name,
                email = EXCLUDED.email,
                phone = EXCLUDED.phone,
                role = EXCLUDED.role
            """,
            (user.id, user.name, user.email, user.phone, user.role.value),
        )
        return user

    # Rooms

    def list_rooms(self) -> list[Room]:
        rows = self._fetchall("SELECT * FROM rooms ORDER BY name")
        return [_row_to_room(row) for row in rows]

    def get_room(self, room_id: str) -> Optional[Room]:
        row = self._fetchone("SELECT * FROM rooms WHERE id = %s", (room_id,))
        return _row_to_room(row) if row else None

    def create_room(
        self, name: str, capacity: int, location: str = "", notes: str = ""
    ) -> Room:
        from psycopg.errors import UniqueViolation

        room = Room(
            id=new_id(), name=name, capacity=capacity, location=location, notes=notes
        )
        try:
            self._execute(
                """
                INSERT INTO rooms (id, name, capacity, is_active, location, notes)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (room.id, room.name, room.capacity, True, room.location, room.notes),
            )
        except UniqueViolation:
            raise DuplicateRoomError(f"Room name already exists: {name}")
        return room

    def update_room(self, room_id: str, changes: dict[str, Any]) -> Optional[Room]:
        from psycopg.errors import UniqueViolation

        fields = [key for key in ROOM_FIELDS if key in changes]
        if not fields:
            return self.get_room(room_id)

        assignments = ", ".join(f"{key} = %s" for key in fields)
        params = tuple(changes[key] for key in fields) + (room_id,)
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"UPDATE rooms SET {assignments} WHERE id = %s RETURNING *",
                        params,
                    )
                    row = cur.fetchone()
                conn.commit()
        except UniqueViolation:
            raise DuplicateRoomError(f"Room name already exists: {changes.get('name')}")
        return _row_to_room(row) if row else None

    def delete_room(self, room_id: str) -> bool:
        return self._execute("DELETE FROM rooms WHERE id = %s", (room_id,)) > 0

    # Bookings

    def insert_booking(self, booking: Booking) -> Booking:
        row = self._fetchone_commit(
            """
            INSERT INTO bookings (
                id, user_id, room_id, attendee_count, team_name, meeting_title,
                duration_minutes, start_at, end_at, meeting_link, status,
                external_event_id
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                booking.id,
                booking.user_id,
                booking.room_id,
                booking.attendee_count,
                booking.team_name,
                booking.meeting_title,
                booking.duration_minutes,
                booking.start_at,
                booking.end_at,
                booking.meeting_link,
                booking.status.value,
                booking.external_event_id,
            ),
        )
        return _row_to_booking(row) if row else booking

    def _fetchone_commit(self, sql: str, params: tuple) -> Optional[dict[str, Any]]:
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            conn.commit()
            return row

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        row = self._fetchone("SELECT * FROM bookings WHERE id = %s", (booking_id,))
        return _row_to_booking(row) if row else None

    def list_bookings_for_user(self, user_id: str, limit: int = 200) -> list[Booking]:
        rows = self._fetchall(
            "SELECT * FROM bookings WHERE user_id = %s ORDER BY start_at LIMIT %s",
            (user_id, limit),
        )
        return [_row_to_booking(row) for row in rows]

    def list_bookings(
        self,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[Booking]:
        conditions = []
        params: list[Any] = []
        if time_min is not None:
            conditions.append("end_at > %s")
            params.append(time_min)
        if time_max is not None:
            conditions.append("start_at < %s")
            params.append(time_max)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        rows = self._fetchall(
            f"SELECT * FROM bookings {where} ORDER BY start_at LIMIT %s",
            tuple(params),
        )
        return [_row_to_booking(row) for row in rows]

    def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        row = self._fetchone_commit(
            "UPDATE bookings SET status = %s WHERE id = %s RETURNING *",
            (status.value, booking_id),
        )
        return _row_to_booking(row) if row else None

    def delete_booking(self, booking_id: str) -> bool:
        return self._execute("DELETE FROM bookings WHERE id = %s", (booking_id,)) > 0

    # Reminders

    def insert_reminders(self, reminders: list[Reminder]) -> None:
        from psycopg.types.json import Jsonb

        if not reminders:
            return
        with self.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO reminders (
                            id, user_id, booking_id, type, scheduled_at, status, meta
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                        """,
                        [
                            (
                                r.id,
                                r.user_id,
                                r.booking_id,
                                r.type_name,
                                r.scheduled_at,
                                r.status.value,
                                Jsonb(r.meta),
                            )
                            for r in reminders
                        ],
                    )

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        row = self._fetchone("SELECT * FROM reminders WHERE id = %s", (reminder_id,))
        return _row_to_reminder(row) if row else None

    def list_due_reminders(self, now: datetime, limit: int) -> list[Reminder]:
        rows = self._fetchall(
            """
            SELECT * FROM reminders
            WHERE status = 'PENDING' AND scheduled_at <= %s
            ORDER BY scheduled_at
            LIMIT %s
            """,
            (now, limit),
        )
        return [_row_to_reminder(row) for row in rows]

    def list_reminders_for_user(
        self, user_id: str, upcoming_after: Optional[datetime] = None, limit: int = 200
    ) -> list[Reminder]:
        if upcoming_after is not None:
            rows = self._fetchall(
                """
                SELECT * FROM reminders
                WHERE user_id = %s AND status = 'PENDING' AND scheduled_at >= %s
                ORDER BY scheduled_at
                LIMIT %s
                """,
                (user_id, upcoming_after, limit),
            )
        else:
            rows = self._fetchall(
                "SELECT * FROM reminders WHERE user_id = %s ORDER BY scheduled_at LIMIT %s",
                (user_id, limit),
            )
        return [_row_to_reminder(row) for row in rows]

    def mark_reminder_sent(
        self, reminder_id: str, sent_at: datetime, meta: dict[str, Any]
    ) -> bool:
        from psycopg.types.json import Jsonb

        return (
            self._execute(
                """
                UPDATE reminders
                SET status = 'SENT', sent_at = %s, last_error = NULL, meta = %s
                WHERE id = %s AND status = 'PENDING'
                """,
                (sent_at, Jsonb(meta), reminder_id),
            )
            > 0
        )

    def mark_reminder_failed(
        self, reminder_id: str, failed_at: datetime, error: str, meta: dict[str, Any]
    ) -> bool:
        from psycopg.types.json import Jsonb

        return (
            self._execute(
                """
                UPDATE reminders
                SET status = 'FAILED', failed_at = %s, last_error = %s, meta = %s
                WHERE id = %s AND status = 'PENDING'
                """,
                (failed_at, error, Jsonb(meta), reminder_id),
            )
            > 0
        )

    def cancel_reminders_for_booking(self, booking_id: str) -> int:
        return self._execute(
            """
            UPDATE reminders SET status = 'CANCELLED'
            WHERE booking_id = %s AND status = 'PENDING'
            """,
            (booking_id,),
        )


class MemoryDatabase(DatabaseInterface):
    """Process-local storage for development and tests."""

    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()
        self._users: dict[str, User] = {}
        self._rooms: dict[str, Room] = {}
        self._bookings: dict[str, Booking] = {}
        self._reminders: dict[str, Reminder] = {}

    def initialize(self) -> None:
        logger.info("Using in-memory database; data is lost on restart")

    def close(self) -> None:
        pass

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user else None

    def upsert_user(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = copy.deepcopy(user)
            return user

    # Rooms

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in sorted(self._rooms.values(), key=lambda r: r.name)
            ]

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._lock:
            room = self._rooms.get(room_id)
            return copy.deepcopy(room) if room else None

    def _name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        return any(r.name == name and r.id != exclude_id for r in self._rooms.values())

    def create_room(
        self, name: str, capacity: int, location: str = "", notes: str = ""
    ) -> Room:
        with self._lock:
            if self._name_taken(name):
                raise DuplicateRoomError(f"Room name already exists: {name}")
            room = Room(
                id=new_id(),
                name=name,
                capacity=capacity,
                location=location,
                notes=notes,
            )
            self._rooms[room.id] = room
            return copy.deepcopy(room)

    def update_room(self, room_id: str, changes: dict[str, Any]) -> Optional[Room]:
        with self._lock:
            room = self._rooms.get(room_id)
            if not room:
                return None
            if "name" in changes and self._name_taken(changes["name"], room_id):
                raise DuplicateRoomError(
                    f"Room name already exists: {changes['name']}"
                )
            for key in ROOM_FIELDS:
                if key in changes:
                    setattr(room, key, changes[key])
            return copy.deepcopy(room)

    def delete_room(self, room_id: str) -> bool:
        with self._lock:
            if self._rooms.pop(room_id, None) is None:
                return False
            for booking in self._bookings.values():
                if booking.room_id == room_id:
                    booking.room_id = None
            return True

    # Bookings

    def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            stored = copy.deepcopy(booking)
            if stored.created_at is None:
                stored.created_at = datetime.now().astimezone()
            self._bookings[stored.id] = stored
            return copy.deepcopy(stored)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return copy.deepcopy(booking) if booking else None

    def list_bookings_for_user(self, user_id: str, limit: int = 200) -> list[Booking]:
        with self._lock:
            items = [b for b in self._bookings.values() if b.user_id == user_id]
            items.sort(key=lambda b: b.start_at)
            return copy.deepcopy(items[:limit])

    def list_bookings(
        self,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[Booking]:
        with self._lock:
            items = [
                b
                for b in self._bookings.values()
                if (time_min is None or b.end_at > time_min)
                and (time_max is None or b.start_at < time_max)
            ]
            items.sort(key=lambda b: b.start_at)
            return copy.deepcopy(items[:limit])

    def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if not booking:
                return None
            booking.status = status
            return copy.deepcopy(booking)

    def delete_booking(self, booking_id: str) -> bool:
        with self._lock:
            return self._bookings.pop(booking_id, None) is not None

    # Reminders

    def insert_reminders(self, reminders: list[Reminder]) -> None:
        with self._lock:
            if any(r.id in self._reminders for r in reminders):
                raise ValueError("Duplicate reminder id")
            for reminder in reminders:
                self._reminders[reminder.id] = copy.deepcopy(reminder)

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            return copy.deepcopy(reminder) if reminder else None

    def list_due_reminders(self, now: datetime, limit: int) -> list[Reminder]:
        with self._lock:
            due = [
                r
                for r in self._reminders.values()
                if r.status is ReminderStatus.PENDING and r.scheduled_at <= now
            ]
            due.sort(key=lambda r: r.scheduled_at)
            return copy.deepcopy(due[:limit])

    def list_reminders_for_user(
        self, user_id: str, upcoming_after: Optional[datetime] = None, limit: int = 200
    ) -> list[Reminder]:
        with self._lock:
            items = [r for r in self._reminders.values() if r.user_id == user_id]
            if upcoming_after is not None:
                items = [
                    r
                    for r in items
                    if r.status is ReminderStatus.PENDING
                    and r.scheduled_at >= upcoming_after
                ]
            items.sort(key=lambda r: r.scheduled_at)
            return copy.deepcopy(items[:limit])

    def mark_reminder_sent(
        self, reminder_id: str, sent_at: datetime, meta: dict[str, Any]
    ) -> bool:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if not reminder or reminder.status is not ReminderStatus.PENDING:
                return False
            reminder.status = ReminderStatus.SENT
            reminder.sent_at = sent_at
            reminder.last_error = None
            reminder.meta = dict(meta)
            return True

    def mark_reminder_failed(
        self, reminder_id: str, failed_at: datetime, error: str, meta: dict[str, Any]
    ) -> bool:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if not reminder or reminder.status is not ReminderStatus.PENDING:
                return False
            reminder.status = ReminderStatus.FAILED
            reminder.failed_at = failed_at
            reminder.last_error = error
            reminder.meta = dict(meta)
            return True

    def cancel_reminders_for_booking(self, booking_id: str) -> int:
        with self._lock:
            cancelled = 0
            for reminder in self._reminders.values():
                if (
                    reminder.booking_id == booking_id
                    and reminder.status is ReminderStatus.PENDING
                ):
                    reminder.status = ReminderStatus.CANCELLED
                    cancelled += 1
            return cancelled


def create_database(config: DatabaseConfig) -> DatabaseInterface:
    if config.backend is DatabaseBackend.MEMORY:
        return MemoryDatabase()
    return PostgresDatabase(config.postgres)
