"""Google Calendar client for the room's calendar."""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from boardroom.config import CalendarConfig
from boardroom.db.types import DatabaseInterface
from boardroom.models import BookingStatus, BusyEvent, TimeInterval

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
TOKEN_URI = "https://oauth2.googleapis.com/token"


class CalendarError(RuntimeError):
    """The calendar provider failed."""


class CalendarAuthError(CalendarError):
    """Calendar authorization expired or was revoked; re-run auth_setup."""


def _parse_event_time(value: Dict[str, Any], tz: ZoneInfo) -> datetime:
    # All-day events carry only a date; anchor them to local midnight
    if "dateTime" in value:
        parsed = date_parser.isoparse(value["dateTime"])
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        return parsed
    day = date.fromisoformat(value["date"])
    return datetime.combine(day, datetime.min.time(), tzinfo=tz)


def event_to_busy(item: Dict[str, Any], tz: ZoneInfo) -> Optional[BusyEvent]:
    """Convert a Google event resource; None for events without a usable range."""
    try:
        start = _parse_event_time(item.get("start", {}), tz)
        end = _parse_event_time(item.get("end", {}), tz)
    except (KeyError, ValueError) as e:
        logger.warning(f"Skipping event {item.get('id')} with unparseable times: {e}")
        return None

    if end <= start:
        logger.debug(f"Skipping zero-length event {item.get('id')}")
        return None

    return BusyEvent(
        title=item.get("summary", "(busy)"),
        interval=TimeInterval(start, end),
        source_id=item.get("id"),
        meeting_link=item.get("hangoutLink"),
    )


class CalendarClient:
    """Client for interacting with Google Calendar API."""

    def __init__(self, config: CalendarConfig, tz: ZoneInfo):
        self.config = config
        self.tz = tz
        self.service: Any = None

    def _get_credentials(self) -> Credentials:
        if not self.config.has_credentials:
            raise CalendarAuthError(
                "Google Calendar credentials missing. Run: python -m boardroom.auth_setup"
            )

        creds = Credentials(
            token=None,
            refresh_token=self.config.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scopes=CALENDAR_SCOPES,
        )
        try:
            creds.refresh(Request())
        except RefreshError as e:
            raise CalendarAuthError(
                f"Google authorization expired or revoked ({e}). Run: python -m boardroom.auth_setup"
            ) from e
        return creds

    def connect(self):
        """Initialize the Calendar service."""
        creds = self._get_credentials()
        self.service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        logger.info("Successfully connected to Google Calendar API")

    def _ensure_connected(self) -> Any:
        if not self.service:
            self.connect()
        if not self.service:
            raise CalendarError("Failed to connect to Calendar service")
        return self.service

    def _execute(self, request: Any, action: str) -> Any:
        try:
            return request.execute()
        except RefreshError as e:
            self.service = None
            raise CalendarAuthError(
                f"Google authorization expired while trying to {action}. Run: python -m boardroom.auth_setup"
            ) from e
        except HttpError as e:
            status_code = getattr(e.resp, "status", None)
            if status_code in (401, 403):
                self.service = None
                raise CalendarAuthError(
                    f"Google Calendar refused to {action} (HTTP {status_code})"
                ) from e
            raise CalendarError(f"Failed to {action}: {e}") from e

    def list_events(self, time_min: datetime, time_max: datetime) -> List[BusyEvent]:
        """Busy events overlapping ``[time_min, time_max)``, ordered by start."""
        service = self._ensure_connected()

        events: List[BusyEvent] = []
        page_token = None
        while True:
            request = service.events().list(
                calendarId=self.config.calendar_id,
                timeMin=time_min.isoformat(),
                timeMax=time_max.isoformat(),
                singleEvents=True,
                orderBy="startTime",
                pageToken=page_token,
            )
            result = self._execute(request, "list events")
            for item in result.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                busy = event_to_busy(item, self.tz)
                if busy:
                    events.append(busy)
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return events

    def create_event(
        self,
        summary: str,
        start: datetime,
        end: datetime,
        description: str = "",
    ) -> str:
        """Create an event and return its id."""
        service = self._ensure_connected()

        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": start.isoformat(), "timeZone": str(self.tz)},
            "end": {"dateTime": end.isoformat(), "timeZone": str(self.tz)},
        }
        event = self._execute(
            service.events().insert(calendarId=self.config.calendar_id, body=body),
            "create event",
        )

        logger.info(f"Created event: {event.get('htmlLink')}")
        return event["id"]

    def delete_event(self, event_id: str) -> None:
        service = self._ensure_connected()
        self._execute(
            service.events().delete(calendarId=self.config.calendar_id, eventId=event_id),
            "delete event",
        )
        logger.info(f"Deleted event {event_id}")


class LocalCalendar:
    """Stand-in calendar for deployments without Google Calendar.

    Confirmed bookings in storage are the only busy events.
    """

    def __init__(self, db: DatabaseInterface):
        self.db = db

    def list_events(self, time_min: datetime, time_max: datetime) -> List[BusyEvent]:
        return [
            BusyEvent(
                title=booking.display_title,
                interval=booking.interval,
                source_id=booking.external_event_id,
                meeting_link=booking.meeting_link,
            )
            for booking in self.db.list_bookings(time_min=time_min, time_max=time_max)
            if booking.status is BookingStatus.CONFIRMED
        ]

    def create_event(
        self, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> str:
        return f"local-{uuid.uuid4().hex}"

    def delete_event(self, event_id: str) -> None:
        pass
