"""Unit tests for the Calendar API client."""

from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from boardroom.calendar_client import (
    CalendarAuthError,
    CalendarClient,
    CalendarError,
    event_to_busy,
)
from boardroom.config import CalendarConfig


@pytest.fixture
def calendar_config():
    return CalendarConfig(
        enabled=True,
        calendar_id="room@example.com",
        client_id="mock_client_id",
        client_secret="mock_client_secret",
        refresh_token="mock_refresh_token",
    )


@pytest.fixture
def client(calendar_config, mock_calendar_service, tz):
    client = CalendarClient(calendar_config, tz)
    client.service = mock_calendar_service
    return client


def http_error(status_code):
    resp = MagicMock()
    resp.status = status_code
    resp.reason = "error"
    return HttpError(resp, b'{"error": {"message": "nope"}}')


def test_list_events(client, mock_calendar_service, at):
    mock_calendar_service.events().list().execute.return_value = {
        "items": [
            {
                "id": "evt1",
                "summary": "Meeting 1",
                "start": {"dateTime": "2024-03-01T10:00:00+03:00"},
                "end": {"dateTime": "2024-03-01T11:00:00+03:00"},
                "hangoutLink": "https://meet.google.com/abc",
            }
        ]
    }

    events = client.list_events(at(0), at(0, day="2024-03-02"))

    assert len(events) == 1
    assert events[0].title == "Meeting 1"
    assert events[0].start == at(10)
    assert events[0].end == at(11)
    assert events[0].source_id == "evt1"
    assert events[0].meeting_link == "https://meet.google.com/abc"
    mock_calendar_service.events().list.assert_called_with(
        calendarId="room@example.com",
        timeMin=at(0).isoformat(),
        timeMax=at(0, day="2024-03-02").isoformat(),
        singleEvents=True,
        orderBy="startTime",
        pageToken=None,
    )


def test_list_events_follows_pages(client, mock_calendar_service, at):
    mock_calendar_service.events().list().execute.side_effect = [
        {
            "items": [
                {
                    "id": "a",
                    "start": {"dateTime": "2024-03-01T09:00:00Z"},
                    "end": {"dateTime": "2024-03-01T09:30:00Z"},
                }
            ],
            "nextPageToken": "page-2",
        },
        {
            "items": [
                {
                    "id": "b",
                    "start": {"dateTime": "2024-03-01T12:00:00Z"},
                    "end": {"dateTime": "2024-03-01T12:30:00Z"},
                }
            ]
        },
    ]

    events = client.list_events(at(0), at(23))

    assert [e.source_id for e in events] == ["a", "b"]
    assert events[0].title == "(busy)"


def test_list_events_skips_cancelled_and_empty(client, mock_calendar_service, at):
    mock_calendar_service.events().list().execute.return_value = {
        "items": [
            {
                "id": "gone",
                "status": "cancelled",
                "start": {"dateTime": "2024-03-01T09:00:00Z"},
                "end": {"dateTime": "2024-03-01T10:00:00Z"},
            },
            {
                "id": "zero",
                "start": {"dateTime": "2024-03-01T09:00:00Z"},
                "end": {"dateTime": "2024-03-01T09:00:00Z"},
            },
        ]
    }

    assert client.list_events(at(0), at(23)) == []


def test_all_day_event_uses_business_timezone(tz, at):
    busy = event_to_busy(
        {
            "id": "holiday",
            "summary": "Public holiday",
            "start": {"date": "2024-03-01"},
            "end": {"date": "2024-03-02"},
        },
        tz,
    )
    assert busy.start == at(0)
    assert busy.end == at(0, day="2024-03-02")


def test_unparseable_event_is_skipped(tz):
    assert event_to_busy({"id": "x", "start": {}, "end": {}}, tz) is None


def test_create_event(client, mock_calendar_service, at):
    mock_calendar_service.events().insert().execute.return_value = {
        "id": "new-evt",
        "htmlLink": "https://calendar.google.com/event?eid=new-evt",
    }

    event_id = client.create_event(
        "Platform — Planning", at(10), at(11), "Meeting Link: https://x"
    )

    assert event_id == "new-evt"
    mock_calendar_service.events().insert.assert_called_with(
        calendarId="room@example.com",
        body={
            "summary": "Platform — Planning",
            "description": "Meeting Link: https://x",
            "start": {"dateTime": at(10).isoformat(), "timeZone": "Africa/Nairobi"},
            "end": {"dateTime": at(11).isoformat(), "timeZone": "Africa/Nairobi"},
        },
    )


def test_delete_event(client, mock_calendar_service):
    client.delete_event("evt1")
    mock_calendar_service.events().delete.assert_called_with(
        calendarId="room@example.com", eventId="evt1"
    )


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_http_errors_are_auth_errors(client, mock_calendar_service, at, status_code):
    mock_calendar_service.events().list().execute.side_effect = http_error(status_code)

    with pytest.raises(CalendarAuthError):
        client.list_events(at(0), at(23))
    assert client.service is None


def test_other_http_errors_are_calendar_errors(client, mock_calendar_service, at):
    mock_calendar_service.events().insert().execute.side_effect = http_error(500)

    with pytest.raises(CalendarError) as excinfo:
        client.create_event("x", at(10), at(11))
    assert not isinstance(excinfo.value, CalendarAuthError)


def test_refresh_error_is_auth_error(client, mock_calendar_service):
    mock_calendar_service.events().delete().execute.side_effect = RefreshError(
        "invalid_grant"
    )
    with pytest.raises(CalendarAuthError):
        client.delete_event("evt1")


def test_connect_without_credentials(tz):
    client = CalendarClient(CalendarConfig(enabled=True), tz)
    with pytest.raises(CalendarAuthError):
        client.connect()


def test_connect_builds_service(calendar_config, mock_calendar_service, tz):
    with patch("boardroom.calendar_client.Credentials") as mock_creds:
        client = CalendarClient(calendar_config, tz)
        client.connect()

    mock_creds.return_value.refresh.assert_called_once()
    assert client.service is mock_calendar_service


def test_connect_with_revoked_token(calendar_config, tz):
    with patch("boardroom.calendar_client.Credentials") as mock_creds:
        mock_creds.return_value.refresh.side_effect = RefreshError("invalid_grant")
        client = CalendarClient(calendar_config, tz)
        with pytest.raises(CalendarAuthError):
            client.connect()
