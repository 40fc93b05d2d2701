import pytest
import yaml
from fastapi.testclient import TestClient

from boardroom.bookings import BookingService
from boardroom.calendar_client import CalendarAuthError, CalendarError
from boardroom.engine.api import app, state
from boardroom.scheduling.dispatch import ReminderDispatcher

ALICE = {"X-User-Id": "user-alice"}
BOB = {"X-User-Id": "user-bob"}
ADMIN = {"X-User-Id": "user-admin", "X-User-Role": "ADMIN"}


@pytest.fixture(autouse=True)
def reset_state(server_config, memory_db, fake_calendar, mock_notifier, alice, bob, admin, at):
    state.config = server_config
    state.database = memory_db
    state.calendar = fake_calendar
    state.notifier = mock_notifier
    state.bookings = BookingService(
        server_config, memory_db, fake_calendar, mock_notifier, clock=lambda: at(7)
    )
    state.dispatcher = ReminderDispatcher(memory_db, mock_notifier, server_config.reminders)
    state.running = True
    yield
    state.config = None
    state.database = None
    state.calendar = None
    state.notifier = None
    state.bookings = None
    state.dispatcher = None
    state.worker = None
    state.running = False


def _client():
    return TestClient(app)


def _book(headers=ALICE, start="2024-03-01T10:00:00+03:00", **extra):
    body = {
        "start_at": start,
        "duration_minutes": 60,
        "attendee_count": 4,
        "team_name": "Platform",
        "meeting_title": "Planning",
    }
    body.update(extra)
    return _client().post("/api/bookings", json=body, headers=headers)


def test_health():
    assert _client().get("/health").json() == {
        "service": "boardroom-engine",
        "health": "healthy",
    }


def test_status_reports_last_tick(at):
    assert _client().get("/api/status").json()["last_reminder_tick"] is None

    state.dispatcher.tick(now=at(9))
    body = _client().get("/api/status").json()

    assert body["status"] == "running"
    assert body["database_type"] == "MemoryDatabase"
    assert body["last_reminder_tick"]["skipped"] is False
    assert body["reminder_tick_in_progress"] is False


def test_day_when_not_initialized():
    state.bookings = None
    response = _client().get("/public/day", params={"date": "2024-03-01"})
    assert response.status_code == 503


def test_day_requires_caller():
    response = _client().get("/api/day", params={"date": "2024-03-01"})
    assert response.status_code == 401


def test_day_view(fake_calendar, busy):
    fake_calendar.list_events.return_value = [busy((9, 0), (9, 30), "Standup")]

    response = _client().get("/api/day", params={"date": "2024-03-01"}, headers=ALICE)

    assert response.status_code == 200
    body = response.json()
    assert body["booked"][0]["title"] == "Standup"
    assert len(body["free_slots"]) == 19
    assert len(body["free_gaps"]) == 2
    assert body["work_window"]["start"] == "2024-03-01T08:00:00+03:00"


def test_public_day_hides_titles(fake_calendar, busy):
    fake_calendar.list_events.return_value = [busy((9, 0), (9, 30), "Standup")]

    body = _client().get("/public/day", params={"date": "2024-03-01"}).json()

    assert body["booked"] == [
        {"start": "2024-03-01T09:00:00+03:00", "end": "2024-03-01T09:30:00+03:00"}
    ]


def test_day_rejects_bad_date():
    response = _client().get("/public/day", params={"date": "March 1st"})
    assert response.status_code == 400


def test_day_calendar_auth_error(fake_calendar):
    fake_calendar.list_events.side_effect = CalendarAuthError("expired")
    response = _client().get("/public/day", params={"date": "2024-03-01"})
    assert response.status_code == 401


def test_create_booking():
    response = _book()

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "ok"
    assert body["booking"]["team_name"] == "Platform"
    assert body["booking"]["start_at"] == "2024-03-01T10:00:00+03:00"
    assert body["booking"]["user_id"] == "user-alice"
    assert len(body["reminders"]) == 3
    assert body["warnings"] == []


def test_create_booking_conflict(fake_calendar, busy):
    fake_calendar.list_events.return_value = [busy((9, 30), (9, 58), "Board sync")]

    response = _book()

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["message"] == 'Clash with: "Board sync"'
    assert detail["conflict"]["title"] == "Board sync"


def test_create_booking_validation_error():
    response = _book(duration_minutes=15)
    assert response.status_code == 400
    assert "duration_minutes" in response.json()["detail"]


def test_create_booking_calendar_failure(fake_calendar):
    fake_calendar.create_event.side_effect = CalendarError("backend down")
    assert _book().status_code == 502


def test_my_bookings_and_cancel():
    booking_id = _book().json()["booking"]["id"]

    mine = _client().get("/api/bookings/mine", headers=ALICE).json()["bookings"]
    assert [b["id"] for b in mine] == [booking_id]
    assert _client().get("/api/bookings/mine", headers=BOB).json()["bookings"] == []

    forbidden = _client().delete(f"/api/bookings/{booking_id}", headers=BOB)
    assert forbidden.status_code == 403

    cancelled = _client().delete(f"/api/bookings/{booking_id}", headers=ALICE)
    assert cancelled.status_code == 200
    assert cancelled.json()["booking"]["status"] == "CANCELLED"


def test_admin_cancel_deletes():
    booking_id = _book().json()["booking"]["id"]

    response = _client().delete(f"/api/bookings/{booking_id}", headers=ADMIN)

    assert response.json()["deleted"] is True
    assert _client().delete(f"/api/bookings/{booking_id}", headers=ADMIN).status_code == 404


def test_my_reminders():
    _book(start="2024-03-01T07:10:00+03:00", duration_minutes=30)

    everything = _client().get("/api/reminders/mine", headers=ALICE).json()["reminders"]
    upcoming = _client().get(
        "/api/reminders/mine", params={"upcoming": "true"}, headers=ALICE
    ).json()["reminders"]

    assert len(everything) == 3
    assert [r["type"] for r in upcoming] == ["JOIN_NOW", "ENDING_10"]


def test_rooms_crud():
    created = _client().post(
        "/api/rooms", json={"name": "Kilimanjaro", "capacity": 12}, headers=ADMIN
    )
    assert created.status_code == 201
    room_id = created.json()["room"]["id"]

    duplicate = _client().post(
        "/api/rooms", json={"name": "Kilimanjaro", "capacity": 4}, headers=ADMIN
    )
    assert duplicate.status_code == 409

    updated = _client().patch(
        f"/api/rooms/{room_id}", json={"is_active": False, "notes": "Renovation"}, headers=ADMIN
    )
    assert updated.json()["room"]["is_active"] is False
    assert updated.json()["room"]["capacity"] == 12

    rooms = _client().get("/api/rooms", headers=ALICE).json()["rooms"]
    assert [r["name"] for r in rooms] == ["Kilimanjaro"]

    # Inactive rooms can't be booked
    assert _book(room_id=room_id).status_code == 400

    assert _client().delete(f"/api/rooms/{room_id}", headers=ADMIN).status_code == 200
    assert _client().delete(f"/api/rooms/{room_id}", headers=ADMIN).status_code == 404


def test_rooms_admin_only():
    response = _client().post(
        "/api/rooms", json={"name": "Kilimanjaro", "capacity": 12}, headers=ALICE
    )
    assert response.status_code == 403


def test_room_capacity_validation():
    response = _client().post(
        "/api/rooms", json={"name": "Closet", "capacity": 0}, headers=ADMIN
    )
    assert response.status_code == 400


def test_admin_bookings_listing():
    _book()
    _book(headers=BOB, start="2024-03-02T10:00:00+03:00")

    everything = _client().get("/api/admin/bookings", headers=ADMIN).json()["bookings"]
    first_day = _client().get(
        "/api/admin/bookings",
        params={"date_from": "2024-03-01", "date_to": "2024-03-01"},
        headers=ADMIN,
    ).json()["bookings"]

    assert len(everything) == 2
    assert len(first_day) == 1
    assert _client().get("/api/admin/bookings", headers=ALICE).status_code == 403


def test_profile_stores_contact_details(memory_db, mock_notifier):
    carol = {"X-User-Id": "user-carol"}

    response = _client().put(
        "/api/me",
        json={"name": "Carol", "email": "carol@example.com", "phone": "+254700000009"},
        headers=carol,
    )

    assert response.status_code == 200
    assert response.json()["user"]["email"] == "carol@example.com"
    stored = memory_db.get_user("user-carol")
    assert (stored.name, stored.phone) == ("Carol", "+254700000009")

    _book(headers=carol)
    confirmed_user = mock_notifier.send_booking_confirmation.call_args[0][0]
    assert confirmed_user.email == "carol@example.com"


def test_profile_partial_update_and_clear():
    _client().put("/api/me", json={"phone": ""}, headers=ALICE)
    _client().put("/api/me", json={"name": "Alice K."}, headers=ALICE)

    user = _client().get("/api/me", headers=ALICE).json()["user"]

    assert user["name"] == "Alice K."
    assert user["email"] == "alice@example.com"
    assert user["phone"] is None


def test_profile_keeps_stored_role(memory_db):
    _client().put(
        "/api/me",
        json={"name": "Sneaky"},
        headers={"X-User-Id": "user-new", "X-User-Role": "ADMIN"},
    )
    assert memory_db.get_user("user-new").role.value == "USER"


def test_profile_rejects_bad_email():
    response = _client().put("/api/me", json={"email": "not-an-email"}, headers=ALICE)
    assert response.status_code == 400


def test_profile_requires_caller():
    assert _client().put("/api/me", json={"name": "x"}).status_code == 401


def test_startup_survives_missing_calendar_credentials(tmp_path, monkeypatch):
    for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REFRESH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        yaml.dump(
            {
                "timezone": "Africa/Nairobi",
                "working_hours": {"start": "08:00", "end": "18:00"},
                "calendar": {"enabled": True},
                "reminders": {"enabled": False},
                "database": {"backend": "memory"},
            }
        )
    )
    monkeypatch.setenv("CONFIG_PATH", str(config_file))

    with TestClient(app) as client:
        assert client.get("/health").json()["health"] == "healthy"
        response = client.get("/public/day", params={"date": "2024-03-01"})

    assert response.status_code == 401
    assert "Calendar authorization required" in response.json()["detail"]
