"""Google Calendar API v3 client (read-only).

Built on the discovery-based ``googleapiclient`` service with refreshable
google-auth credentials (see :mod:`youdoyou.services.google_auth`).  Only
the primary calendar of the authenticated user is read.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
PRIMARY_CALENDAR = "primary"

TIME_RANGES = ("today", "this week", "next week", "next 7 days")


class CalendarAPIError(Exception):
    """Raised when a Calendar API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class CalendarEvent:
    id: str
    summary: str
    start_time: datetime
    end_time: datetime
    location: str = ""
    all_day: bool = False


def _load_zone(timezone: str) -> tzinfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", timezone)
        return ZoneInfo("UTC")


def parse_time_range(
    time_range: str,
    timezone: str,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Resolve a phrase like ``"this week"`` to a ``(start, end)`` pair.

    Weeks start on Sunday.  Unrecognised phrases mean the next 7 days.
    """
    zone = _load_zone(timezone)
    now = (now or datetime.now(zone)).astimezone(zone)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = midnight - timedelta(days=(now.weekday() + 1) % 7)

    phrase = time_range.strip().lower()
    if phrase == "today":
        return midnight, midnight + timedelta(days=1)
    if phrase == "this week":
        return week_start, week_start + timedelta(days=7)
    if phrase == "next week":
        start = week_start + timedelta(days=7)
        return start, start + timedelta(days=7)
    return now, now + timedelta(days=7)


def _parse_event_time(raw: dict[str, Any], zone: tzinfo) -> tuple[datetime, bool]:
    if raw.get("dateTime"):
        return datetime.fromisoformat(raw["dateTime"].replace("Z", "+00:00")), False
    return datetime.fromisoformat(raw["date"]).replace(tzinfo=zone), True


class CalendarClient:
    """Wrapper around the Calendar events resource.

    Pass *credentials* to have the service built on first use, or an
    already built *service*.  Requests are serialised because the
    underlying ``httplib2`` transport is not thread-safe.
    """

    def __init__(self, credentials=None, *, service=None):
        if credentials is None and service is None:
            raise ValueError("CalendarClient needs credentials or a service")
        self._credentials = credentials
        self._service = service
        self._lock = threading.Lock()

    def _get_service(self):
        if self._service is None:
            self._service = build(
                "calendar", "v3", credentials=self._credentials, cache_discovery=False,
            )
        return self._service

    def _list_events(self, **params: Any) -> dict[str, Any]:
        """Run ``events.list``; 5xx, 429 and transport errors are retried."""
        try:
            with self._lock:
                request = self._get_service().events().list(calendarId=PRIMARY_CALENDAR, **params)
                return request.execute(num_retries=MAX_RETRIES - 1)
        except HttpError as exc:
            status = exc.resp.status
            raise CalendarAPIError(
                f"Calendar API error {status}: {exc.reason}", status_code=status,
            ) from exc
        except RefreshError as exc:
            raise CalendarAPIError(
                f"Calendar credentials could not be refreshed: {exc}", status_code=401,
            ) from exc
        except OSError as exc:
            raise CalendarAPIError(
                f"Calendar API request failed after {MAX_RETRIES} attempts: {exc}"
            ) from exc

    def get_events(self, time_range: str, timezone: str) -> list[CalendarEvent]:
        """List events of the primary calendar within *time_range*."""
        start, end = parse_time_range(time_range, timezone)
        data = self._list_events(
            timeMin=start.isoformat(),
            timeMax=end.isoformat(),
            timeZone=timezone,
            singleEvents=True,
            orderBy="startTime",
        )

        zone = _load_zone(timezone)
        events: list[CalendarEvent] = []
        for item in data.get("items", []):
            try:
                start_time, all_day = _parse_event_time(item.get("start", {}), zone)
                end_time, _ = _parse_event_time(item.get("end", {}), zone)
            except (KeyError, ValueError):
                logger.warning("Skipping calendar event %s with unreadable times", item.get("id"))
                continue
            events.append(
                CalendarEvent(
                    id=item.get("id", ""),
                    summary=item.get("summary", "(no title)"),
                    start_time=start_time,
                    end_time=end_time,
                    location=item.get("location", ""),
                    all_day=all_day,
                )
            )
        return events
