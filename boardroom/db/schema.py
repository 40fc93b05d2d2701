from typing import Any


def initialize_schema(cur: Any) -> None:
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT '',
            email TEXT,
            phone TEXT,
            role TEXT NOT NULL DEFAULT 'USER'
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS rooms (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            capacity INTEGER NOT NULL CHECK (capacity >= 1),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            location TEXT NOT NULL DEFAULT '',
            notes TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS bookings (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            room_id TEXT REFERENCES rooms(id) ON DELETE SET NULL,
            attendee_count INTEGER NOT NULL CHECK (attendee_count >= 1),
            team_name TEXT NOT NULL,
            meeting_title TEXT NOT NULL DEFAULT '',
            duration_minutes INTEGER NOT NULL,
            start_at TIMESTAMPTZ NOT NULL,
            end_at TIMESTAMPTZ NOT NULL,
            meeting_link TEXT,
            status TEXT NOT NULL DEFAULT 'CONFIRMED',
            external_event_id TEXT NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CHECK (start_at < end_at)
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS reminders (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            booking_id TEXT NOT NULL,
            type TEXT NOT NULL,
            scheduled_at TIMESTAMPTZ NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            sent_at TIMESTAMPTZ,
            failed_at TIMESTAMPTZ,
            last_error TEXT,
            meta JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """
    )


def create_indexes(cur: Any) -> None:
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_bookings_user_start ON bookings(user_id, start_at)"
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_bookings_start ON bookings(start_at)")
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(status, scheduled_at)"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_reminders_booking ON reminders(booking_id)"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_reminders_user ON reminders(user_id, scheduled_at)"
    )
