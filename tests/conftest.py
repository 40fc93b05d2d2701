"""Pytest fixtures for boardroom tests."""

import logging
from datetime import datetime
from typing import Callable
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from boardroom.config import (
    BookingConfig,
    DatabaseBackend,
    DatabaseConfig,
    ReminderConfig,
    ServerConfig,
    WorkingHoursConfig,
)
from boardroom.engine.database import MemoryDatabase
from boardroom.models import BusyEvent, TimeInterval, User, UserRole
from boardroom.notifications import DeliveryResult, Notifier

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

NAIROBI = ZoneInfo("Africa/Nairobi")


@pytest.fixture
def tz():
    return NAIROBI


@pytest.fixture
def at() -> Callable[..., datetime]:
    """Build a Nairobi-local instant: ``at(9, 30)`` or ``at(9, 30, day="2024-03-02")``."""

    def _at(hour: int, minute: int = 0, day: str = "2024-03-01") -> datetime:
        year, month, dom = (int(part) for part in day.split("-"))
        return datetime(year, month, dom, hour, minute, tzinfo=NAIROBI)

    return _at


@pytest.fixture
def busy(at):
    """Build a BusyEvent from local ``(hour, minute)`` pairs."""

    def _busy(start, end, title="Busy", day="2024-03-01"):
        return BusyEvent(
            title=title,
            interval=TimeInterval(at(*start, day=day), at(*end, day=day)),
            source_id=f"evt-{title}",
        )

    return _busy


@pytest.fixture
def server_config():
    """Default business rules with in-memory storage."""
    return ServerConfig(
        timezone="Africa/Nairobi",
        working_hours=WorkingHoursConfig(start="08:00", end="18:00"),
        booking=BookingConfig(buffer_minutes=5, slot_minutes=30),
        reminders=ReminderConfig(),
        database=DatabaseConfig(backend=DatabaseBackend.MEMORY),
    )


@pytest.fixture
def memory_db():
    db = MemoryDatabase()
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def alice(memory_db):
    user = User(
        id="user-alice",
        name="Alice",
        email="alice@example.com",
        phone="+254700000001",
    )
    memory_db.upsert_user(user)
    return user


@pytest.fixture
def bob(memory_db):
    user = User(id="user-bob", name="Bob", email="bob@example.com")
    memory_db.upsert_user(user)
    return user


@pytest.fixture
def admin(memory_db):
    user = User(id="user-admin", name="Admin", role=UserRole.ADMIN)
    memory_db.upsert_user(user)
    return user


@pytest.fixture
def fake_calendar():
    """Calendar collaborator with an empty calendar."""
    calendar = MagicMock()
    calendar.list_events.return_value = []
    calendar.create_event.return_value = "gcal-event-1"
    return calendar


@pytest.fixture
def mock_notifier():
    """Notifier whose every send succeeds."""
    notifier = MagicMock(spec=Notifier)
    notifier.send_reminder_email.return_value = DeliveryResult(
        ok=True, provider_message_id="<email-1@example.com>"
    )
    notifier.send_reminder_sms.return_value = DeliveryResult(
        ok=True, provider_message_id="SM123"
    )
    notifier.send_booking_confirmation.return_value = []
    return notifier


@pytest.fixture
def mock_calendar_service():
    """Create a mock Google Calendar API service."""
    with patch("boardroom.calendar_client.build") as mock_build:
        service = MagicMock()
        mock_build.return_value = service
        service.events().list().execute.return_value = {"items": []}
        yield service
