"""Calendar sync collaborator - registers confirmed appointments externally.

Sync is best-effort. create_event returns the external event id, or None
when no calendar is configured; transport failures raise CalendarSyncError
so the caller can record them without rolling back the appointment.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

import httpx

from fixdesk.core.config import settings
from fixdesk.db.types import ensure_utc

logger = logging.getLogger(__name__)

GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"


class CalendarSyncError(Exception):
    """External calendar rejected or could not be reached."""


class CalendarClient(ABC):
    @abstractmethod
    async def create_event(
        self,
        title: str,
        description: str | None,
        start: datetime,
        end: datetime,
    ) -> str | None:
        """Create an external event and return its id."""


class NullCalendarClient(CalendarClient):
    """Used when no external calendar is configured."""

    async def create_event(self, title, description, start, end) -> str | None:
        logger.info("[DRY RUN] Calendar sync skipped for %r", title)
        return None


class GoogleCalendarClient(CalendarClient):
    def __init__(self, access_token: str, calendar_id: str = "primary", timeout: float = 10.0):
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.timeout = timeout

    async def create_event(
        self,
        title: str,
        description: str | None,
        start: datetime,
        end: datetime,
    ) -> str | None:
        event_body: dict = {
            "summary": title,
            "start": {"dateTime": ensure_utc(start).isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": ensure_utc(end).isoformat(), "timeZone": "UTC"},
        }
        if description:
            event_body["description"] = description

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    GOOGLE_EVENTS_URL.format(calendar_id=self.calendar_id),
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=event_body,
                )
        except httpx.HTTPError as exc:
            raise CalendarSyncError(f"Calendar request failed: {type(exc).__name__}") from exc

        if response.status_code not in (200, 201):
            raise CalendarSyncError(f"Calendar returned HTTP {response.status_code}")
        event_id = response.json().get("id")
        if not event_id:
            raise CalendarSyncError("Calendar response missing event id")
        return event_id


def build_calendar_client() -> CalendarClient:
    """Calendar client from settings (null client when no token is set)."""
    if not settings.GOOGLE_CALENDAR_ACCESS_TOKEN:
        return NullCalendarClient()
    return GoogleCalendarClient(
        settings.GOOGLE_CALENDAR_ACCESS_TOKEN,
        calendar_id=settings.GOOGLE_CALENDAR_ID,
        timeout=settings.CALENDAR_SYNC_TIMEOUT_SECONDS,
    )
