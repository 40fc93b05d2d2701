import logging
import os
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Optional, Union

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from pydantic import BaseModel

from boardroom.bookings import (
    BookingNotFoundError,
    BookingPermissionError,
    BookingRequest,
    BookingService,
    BookingValidationError,
)
from boardroom.calendar_client import (
    CalendarAuthError,
    CalendarClient,
    CalendarError,
    LocalCalendar,
)
from boardroom.config import ServerConfig, load_config
from boardroom.db import DatabaseInterface, DuplicateRoomError
from boardroom.engine.database import create_database
from boardroom.engine.reminder_worker import ReminderWorker
from boardroom.models import User, UserRole
from boardroom.notifications import Notifier
from boardroom.scheduling.dispatch import ReminderDispatcher
from boardroom.scheduling.work_window import parse_date

logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)


class EngineState:
    def __init__(self):
        self.config: Optional[ServerConfig] = None
        self.database: Optional[DatabaseInterface] = None
        self.calendar: Optional[Union[CalendarClient, LocalCalendar]] = None
        self.notifier: Optional[Notifier] = None
        self.bookings: Optional[BookingService] = None
        self.dispatcher: Optional[ReminderDispatcher] = None
        self.worker: Optional[ReminderWorker] = None
        self.running = False


state = EngineState()


# Request models
class BookingCreateRequest(BaseModel):
    start_at: datetime
    duration_minutes: int
    attendee_count: int
    team_name: str
    meeting_title: Optional[str] = None
    meeting_link: Optional[str] = None
    room_id: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RoomCreateRequest(BaseModel):
    name: str
    capacity: int
    location: str = ""
    notes: str = ""


class RoomUpdateRequest(BaseModel):
    name: Optional[str] = None
    capacity: Optional[int] = None
    is_active: Optional[bool] = None
    location: Optional[str] = None
    notes: Optional[str] = None


def initialize_state(config: ServerConfig) -> None:
    """Build storage, calendar, notifier and services from ``config``."""
    state.config = config

    state.database = create_database(config.database)
    state.database.initialize()
    logger.info(f"Database initialized: {type(state.database).__name__}")

    if config.calendar.enabled:
        client = CalendarClient(config.calendar, config.tz)
        try:
            client.connect()
            logger.info(f"Using Google Calendar '{config.calendar.calendar_id}'")
        except CalendarError as e:
            # Requests retry the connection and report the error to the caller
            logger.warning(f"Calendar connection failed (non-fatal): {e}")
        state.calendar = client
    else:
        state.calendar = LocalCalendar(state.database)
        logger.info("Calendar disabled; busy times come from stored bookings")

    state.notifier = Notifier.from_config(config)
    state.bookings = BookingService(config, state.database, state.calendar, state.notifier)
    state.dispatcher = ReminderDispatcher(state.database, state.notifier, config.reminders)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting boardroom engine...")

    initialize_state(load_config(os.environ.get("CONFIG_PATH")))
    state.running = True

    if state.config.reminders.enabled:
        state.worker = ReminderWorker(
            state.dispatcher, state.config.reminders.schedule, state.config.tz
        )
        state.worker.start()
    else:
        logger.info("Reminder dispatch disabled in config")

    yield

    logger.info("Shutting down boardroom engine...")
    state.running = False

    if state.worker:
        state.worker.stop()
        state.worker = None

    if state.notifier:
        state.notifier.close()

    if state.database:
        state.database.close()


app = FastAPI(title="Boardroom Engine", lifespan=lifespan)


def _require_bookings() -> BookingService:
    if not state.bookings:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialized",
        )
    return state.bookings


def _require_database() -> DatabaseInterface:
    if not state.database:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not initialized",
        )
    return state.database


def _calendar_http_error(e: CalendarError) -> HTTPException:
    if isinstance(e, CalendarAuthError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Calendar authorization required: {e}",
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Calendar error: {e}",
    )


def _parse_day(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> User:
    """Caller identity, set by the authenticating proxy in front of the engine."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    role = UserRole.from_string(x_user_role)
    user = _require_database().get_user(x_user_id)
    if not user:
        return User(id=x_user_id, role=role)
    return replace(user, role=role)


def require_admin(caller: User = Depends(get_caller)) -> User:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return caller


# ============================================================================
# Status endpoints
# ============================================================================


@app.get("/health")
async def health():
    return {
        "service": "boardroom-engine",
        "health": "healthy" if state.running else "stopped",
    }


@app.get("/api/status")
async def get_status():
    last_tick = state.dispatcher.last_tick if state.dispatcher else None
    return {
        "status": "running" if state.running else "stopped",
        "database_type": type(state.database).__name__ if state.database else None,
        "calendar_type": type(state.calendar).__name__ if state.calendar else None,
        "reminder_worker_running": state.worker is not None and state.worker.running,
        "reminder_tick_in_progress": state.dispatcher.running
        if state.dispatcher
        else False,
        "last_reminder_tick": last_tick.to_dict() if last_tick else None,
    }


# ============================================================================
# Profile
# ============================================================================


def _profile(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role.value,
    }


@app.get("/api/me")
def get_me(caller: User = Depends(get_caller)):
    return {"status": "ok", "user": _profile(caller)}


@app.put("/api/me")
def update_me(req: ProfileUpdateRequest, caller: User = Depends(get_caller)):
    """Store the caller's name and the contact details reminders are sent to.

    Omitted fields are left as they are; an empty string clears email or phone.
    """
    db = _require_database()
    stored = db.get_user(caller.id) or User(id=caller.id)
    changes = req.model_dump(exclude_unset=True)

    if "name" in changes:
        stored = replace(stored, name=(changes["name"] or "").strip())
    if "email" in changes:
        email = (changes["email"] or "").strip() or None
        if email and "@" not in email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid email: {email}"
            )
        stored = replace(stored, email=email)
    if "phone" in changes:
        stored = replace(stored, phone=(changes["phone"] or "").strip() or None)

    db.upsert_user(stored)
    logger.info(f"Profile updated for {caller.id}: {sorted(changes)}")
    return {"status": "ok", "user": _profile(replace(stored, role=caller.role))}


# ============================================================================
# Day view
# ============================================================================


@app.get("/api/day")
def get_day(date: str = Query(...), caller: User = Depends(get_caller)):
    service = _require_bookings()
    try:
        view = service.day_view(_parse_day(date))
    except CalendarError as e:
        raise _calendar_http_error(e)
    return {"status": "ok", **view.to_dict()}


@app.get("/public/day")
def get_public_day(date: str = Query(...)):
    service = _require_bookings()
    try:
        view = service.day_view(_parse_day(date))
    except CalendarError as e:
        raise _calendar_http_error(e)
    return {"status": "ok", **view.to_dict(include_titles=False)}


# ============================================================================
# Bookings
# ============================================================================


@app.post("/api/bookings", status_code=status.HTTP_201_CREATED)
def create_booking(req: BookingCreateRequest, caller: User = Depends(get_caller)):
    service = _require_bookings()
    request = BookingRequest(
        start_at=req.start_at,
        duration_minutes=req.duration_minutes,
        attendee_count=req.attendee_count,
        team_name=req.team_name,
        meeting_title=req.meeting_title or "",
        meeting_link=req.meeting_link,
        room_id=req.room_id,
    )

    try:
        result = service.create_booking(caller, request)
    except BookingValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except CalendarError as e:
        logger.error(f"Booking aborted by calendar failure: {e}")
        raise _calendar_http_error(e)

    if result.conflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": f'Clash with: "{result.conflict.title}"',
                "conflict": result.conflict.to_dict(),
            },
        )

    return {
        "status": "ok",
        "booking": result.booking.to_dict(),
        "reminders": [r.to_dict() for r in result.reminders],
        "warnings": result.warnings,
    }


@app.get("/api/bookings/mine")
def list_my_bookings(caller: User = Depends(get_caller)):
    bookings = _require_bookings().list_user_bookings(caller.id)
    return {"status": "ok", "bookings": [b.to_dict() for b in bookings]}


@app.delete("/api/bookings/{booking_id}")
def cancel_booking(booking_id: str, caller: User = Depends(get_caller)):
    service = _require_bookings()
    try:
        result = service.cancel_booking(caller, booking_id)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BookingPermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    if result.deleted:
        return {"status": "ok", "deleted": True, "warnings": result.warnings}
    return {
        "status": "ok",
        "booking": result.booking.to_dict(),
        "warnings": result.warnings,
    }


@app.get("/api/reminders/mine")
def list_my_reminders(upcoming: bool = False, caller: User = Depends(get_caller)):
    reminders = _require_bookings().list_user_reminders(caller.id, upcoming=upcoming)
    return {"status": "ok", "reminders": [r.to_dict() for r in reminders]}


# ============================================================================
# Rooms
# ============================================================================


@app.get("/api/rooms")
def list_rooms(caller: User = Depends(get_caller)):
    rooms = _require_database().list_rooms()
    return {"status": "ok", "rooms": [r.to_dict() for r in rooms]}


@app.post("/api/rooms", status_code=status.HTTP_201_CREATED)
def create_room(req: RoomCreateRequest, admin: User = Depends(require_admin)):
    db = _require_database()
    name = req.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name required")
    if req.capacity < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="capacity must be >= 1"
        )

    try:
        room = db.create_room(name, req.capacity, location=req.location, notes=req.notes)
    except DuplicateRoomError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Room name already exists"
        )

    logger.info(f"Room created by {admin.id}: {room.name} (Cap {room.capacity})")
    return {"status": "ok", "room": room.to_dict()}


@app.patch("/api/rooms/{room_id}")
def update_room(
    room_id: str, req: RoomUpdateRequest, admin: User = Depends(require_admin)
):
    db = _require_database()
    changes: dict[str, Any] = {
        key: value for key, value in req.model_dump().items() if value is not None
    }
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    if "capacity" in changes and changes["capacity"] < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="capacity must be >= 1"
        )

    try:
        room = db.update_room(room_id, changes)
    except DuplicateRoomError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Room name already exists"
        )
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    logger.info(f"Room {room_id} updated by {admin.id}: {sorted(changes)}")
    return {"status": "ok", "room": room.to_dict()}


@app.delete("/api/rooms/{room_id}")
def delete_room(room_id: str, admin: User = Depends(require_admin)):
    if not _require_database().delete_room(room_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    logger.info(f"Room {room_id} deleted by {admin.id}")
    return {"status": "ok"}


# ============================================================================
# Admin
# ============================================================================


@app.get("/api/admin/bookings")
def list_all_bookings(
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    admin: User = Depends(require_admin),
):
    service = _require_bookings()
    bookings = service.list_all_bookings(
        _parse_day(date_from) if date_from else None,
        _parse_day(date_to) if date_to else None,
    )
    return {"status": "ok", "bookings": [b.to_dict() for b in bookings]}


def run_engine():
    import argparse

    parser = argparse.ArgumentParser(description="Boardroom booking engine API")
    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="TCP host to bind to"
    )
    parser.add_argument("--port", type=int, default=8001, help="TCP port to bind to")
    args = parser.parse_args()

    logger.info(f"Starting Engine API on TCP {args.host}:{args.port}")
    config = uvicorn.Config(
        app,
        host=args.host,
        port=args.port,
        log_level="info",
    )

    server = uvicorn.Server(config)
    server.run()
