"""Tests for the Calendar client and tool."""

from __future__ import annotations

import json
from datetime import datetime
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials as UserCredentials
from googleapiclient.errors import HttpError

from youdoyou.errors import ToolExecutionFailed
from youdoyou.services.calendar_client import (
    MAX_RETRIES,
    CalendarAPIError,
    CalendarClient,
    CalendarEvent,
    parse_time_range,
)
from youdoyou.services.google_auth import CALENDAR_SCOPES, load_credentials
from youdoyou.tools.calendar import create_calendar_tool, format_events

TOKYO = ZoneInfo("Asia/Tokyo")
# Wednesday
NOW = datetime(2025, 12, 17, 15, 30, tzinfo=TOKYO)


# ── Tests: parse_time_range ──────────────────────────────────────────


class TestParseTimeRange:
    def test_today(self):
        start, end = parse_time_range("today", "Asia/Tokyo", now=NOW)
        assert start == datetime(2025, 12, 17, tzinfo=TOKYO)
        assert end == datetime(2025, 12, 18, tzinfo=TOKYO)

    def test_this_week_starts_on_sunday(self):
        start, end = parse_time_range("this week", "Asia/Tokyo", now=NOW)
        assert start == datetime(2025, 12, 14, tzinfo=TOKYO)
        assert end == datetime(2025, 12, 21, tzinfo=TOKYO)

    def test_this_week_on_a_sunday(self):
        sunday = datetime(2025, 12, 14, 9, 0, tzinfo=TOKYO)
        start, _ = parse_time_range("this week", "Asia/Tokyo", now=sunday)
        assert start == datetime(2025, 12, 14, tzinfo=TOKYO)

    def test_next_week(self):
        start, end = parse_time_range("Next Week", "Asia/Tokyo", now=NOW)
        assert start == datetime(2025, 12, 21, tzinfo=TOKYO)
        assert end == datetime(2025, 12, 28, tzinfo=TOKYO)

    def test_unknown_phrase_means_next_seven_days(self):
        start, end = parse_time_range("whenever", "Asia/Tokyo", now=NOW)
        assert start == NOW
        assert (end - start).days == 7

    def test_unknown_timezone_falls_back_to_utc(self):
        start, _ = parse_time_range("today", "Mars/Olympus", now=NOW)
        assert start.utcoffset().total_seconds() == 0


# ── Tests: CalendarClient ────────────────────────────────────────────


def _calendar(response=None, error=None):
    """A CalendarClient over a mocked discovery service."""
    service = MagicMock()
    request = service.events.return_value.list.return_value
    if error is not None:
        request.execute.side_effect = error
    else:
        request.execute.return_value = response
    return CalendarClient(service=service), service


def _http_error(status: int, reason: str) -> HttpError:
    return HttpError(resp=MagicMock(status=status, reason=reason), content=reason.encode())


class TestGetEvents:
    def test_parses_timed_and_all_day_events(self):
        data = {
            "items": [
                {
                    "id": "e1",
                    "summary": "Standup",
                    "start": {"dateTime": "2025-12-17T10:00:00+09:00"},
                    "end": {"dateTime": "2025-12-17T10:15:00+09:00"},
                    "location": "Room A",
                },
                {
                    "id": "e2",
                    "summary": "Holiday",
                    "start": {"date": "2025-12-18"},
                    "end": {"date": "2025-12-19"},
                },
                {"id": "e3", "start": {}, "end": {}},
            ]
        }
        client, service = _calendar(data)
        events = client.get_events("today", "Asia/Tokyo")

        assert [e.id for e in events] == ["e1", "e2"]
        assert events[0].location == "Room A"
        assert events[0].all_day is False
        assert events[1].all_day is True
        kwargs = service.events.return_value.list.call_args[1]
        assert kwargs["calendarId"] == "primary"
        assert kwargs["singleEvents"] is True
        assert kwargs["orderBy"] == "startTime"
        assert kwargs["timeZone"] == "Asia/Tokyo"

    def test_missing_summary_gets_placeholder(self):
        data = {"items": [{
            "id": "e1",
            "start": {"dateTime": "2025-12-17T10:00:00Z"},
            "end": {"dateTime": "2025-12-17T11:00:00Z"},
        }]}
        client, _ = _calendar(data)
        assert client.get_events("today", "UTC")[0].summary == "(no title)"

    def test_retries_are_delegated_to_the_request(self):
        client, service = _calendar({"items": []})
        assert client.get_events("today", "Asia/Tokyo") == []
        request = service.events.return_value.list.return_value
        request.execute.assert_called_once_with(num_retries=MAX_RETRIES - 1)

    def test_http_error_keeps_status_code(self):
        client, _ = _calendar(error=_http_error(401, "Unauthorized"))
        with pytest.raises(CalendarAPIError, match="401") as exc_info:
            client.get_events("today", "Asia/Tokyo")
        assert exc_info.value.status_code == 401

    def test_refresh_failure_is_an_auth_error(self):
        client, _ = _calendar(error=RefreshError("invalid_grant: Token has been revoked"))
        with pytest.raises(CalendarAPIError, match="refreshed") as exc_info:
            client.get_events("today", "Asia/Tokyo")
        assert exc_info.value.status_code == 401

    def test_transport_error_after_retries(self):
        client, _ = _calendar(error=TimeoutError("timed out"))
        with pytest.raises(CalendarAPIError, match="timed out") as exc_info:
            client.get_events("today", "Asia/Tokyo")
        assert exc_info.value.status_code is None

    @patch("youdoyou.services.calendar_client.build")
    def test_service_is_built_once_from_credentials(self, mock_build):
        credentials = MagicMock()
        mock_build.return_value.events.return_value.list.return_value.execute.return_value = {}
        client = CalendarClient(credentials)

        client.get_events("today", "Asia/Tokyo")
        client.get_events("this week", "Asia/Tokyo")

        mock_build.assert_called_once_with(
            "calendar", "v3", credentials=credentials, cache_discovery=False,
        )

    def test_needs_credentials_or_service(self):
        with pytest.raises(ValueError):
            CalendarClient()


# ── Tests: credentials ───────────────────────────────────────────────


def _write_json(path, data: dict) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


AUTHORIZED_USER = {
    "type": "authorized_user",
    "client_id": "client-id.apps.googleusercontent.com",
    "client_secret": "client-secret",
    "refresh_token": "refresh-token",
}


class TestLoadCredentials:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="not found"):
            load_credentials(tmp_path / "absent.json")

    def test_authorized_user_file(self, tmp_path):
        path = _write_json(tmp_path / "token.json", AUTHORIZED_USER)
        creds = load_credentials(path)
        assert isinstance(creds, UserCredentials)
        assert creds.refresh_token == "refresh-token"
        assert creds.scopes == CALENDAR_SCOPES

    @patch("youdoyou.services.google_auth.Request")
    @patch.object(UserCredentials, "refresh")
    def test_expired_token_is_refreshed(self, mock_refresh, mock_request, tmp_path):
        path = _write_json(
            tmp_path / "token.json",
            {**AUTHORIZED_USER, "token": "old", "expiry": "2000-01-01T00:00:00Z"},
        )
        load_credentials(path)
        mock_refresh.assert_called_once_with(mock_request.return_value)

    def test_not_a_credentials_file(self, tmp_path):
        path = _write_json(tmp_path / "token.json", {"hello": "world"})
        with pytest.raises(ValueError):
            load_credentials(path)

    @patch("youdoyou.services.google_auth.service_account.Credentials.from_service_account_info")
    def test_service_account_with_delegation(self, mock_from_info, tmp_path):
        info = {"type": "service_account", "client_email": "agent@p.iam.gserviceaccount.com"}
        path = _write_json(tmp_path / "sa.json", info)

        creds = load_credentials(path, subject="owner@example.com")

        mock_from_info.assert_called_once_with(info, scopes=CALENDAR_SCOPES)
        mock_from_info.return_value.with_subject.assert_called_once_with("owner@example.com")
        assert creds is mock_from_info.return_value.with_subject.return_value

    @patch("youdoyou.services.google_auth.service_account.Credentials.from_service_account_info")
    def test_service_account_without_delegation(self, mock_from_info, tmp_path):
        path = _write_json(tmp_path / "sa.json", {"type": "service_account"})
        creds = load_credentials(path)
        assert creds is mock_from_info.return_value
        mock_from_info.return_value.with_subject.assert_not_called()


# ── Tests: tool ──────────────────────────────────────────────────────


class TestCalendarTool:
    def test_format_events(self):
        events = [
            CalendarEvent(
                id="e1", summary="Standup",
                start_time=datetime(2025, 12, 17, 10, 0, tzinfo=TOKYO),
                end_time=datetime(2025, 12, 17, 10, 15, tzinfo=TOKYO),
                location="Room A",
            ),
            CalendarEvent(
                id="e2", summary="Holiday",
                start_time=datetime(2025, 12, 18, tzinfo=TOKYO),
                end_time=datetime(2025, 12, 19, tzinfo=TOKYO),
                all_day=True,
            ),
        ]
        assert format_events(events) == (
            "Standup (2025-12-17 10:00) @ Room A\n"
            "Holiday (2025-12-18 all day)"
        )

    def test_format_no_events(self):
        assert format_events([]) == "No events in that time range."

    def test_tool_uses_default_timezone(self):
        calendar = MagicMock()
        calendar.get_events.return_value = []
        tool = create_calendar_tool(calendar, "Asia/Tokyo")
        assert tool.name == "getCalendar"
        tool.invoke({"time_range": "today"})
        calendar.get_events.assert_called_once_with("today", "Asia/Tokyo")

    def test_api_error_becomes_tool_failure(self):
        calendar = MagicMock()
        calendar.get_events.side_effect = CalendarAPIError("Calendar API error 401")
        tool = create_calendar_tool(calendar, "Asia/Tokyo")
        with pytest.raises(ToolExecutionFailed, match="401"):
            tool.invoke({})
