"""Calendar provider: reads upcoming events from Google Calendar.

Events are normalized into CalendarEvent records before they reach the
corpus, so nothing downstream sees attendee identities or meeting URLs.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .settings import CALENDAR_MAX_RESULTS, CALENDAR_MATCH_TERMS, CREDENTIALS_PATH, TOKEN_PATH

logger = logging.getLogger("digital_twin.calendar")

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
LOOKBACK_DAYS = 1


@dataclass(frozen=True)
class CalendarInfo:
    id: str
    display_name: str
    is_primary: bool = False


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    starts_at: str
    ends_at: Optional[str] = None
    all_day: bool = False
    location: Optional[str] = None
    attendee_count: int = 0
    description: Optional[str] = None
    has_meeting_link: bool = False
    is_recurring: bool = False


@dataclass(frozen=True)
class CalendarFetch:
    """Outcome of a calendar fetch: either events, or a reason it degraded."""

    events: List[CalendarEvent] = field(default_factory=list)
    degraded_reason: Optional[str] = None

    @classmethod
    def ok(cls, events: List[CalendarEvent]) -> "CalendarFetch":
        return cls(events=list(events))

    @classmethod
    def degraded(cls, reason: str) -> "CalendarFetch":
        return cls(events=[], degraded_reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.degraded_reason is None


def parse_event_start(value: str) -> datetime:
    """Parse an event timestamp or all-day date into a naive local datetime.

    Offset-aware timestamps are converted to the process's local zone; bare
    dates are taken as local midnight.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def normalize_google_event(event: Dict[str, Any]) -> CalendarEvent:
    start = event.get("start") or {}
    end = event.get("end") or {}
    all_day = "dateTime" not in start
    conference = event.get("conferenceData") or {}
    return CalendarEvent(
        id=str(event.get("id", "")),
        title=event.get("summary") or "Untitled event",
        starts_at=start.get("dateTime") or start.get("date") or "",
        ends_at=end.get("dateTime") or end.get("date"),
        all_day=all_day,
        location=event.get("location") or None,
        attendee_count=len(event.get("attendees") or []),
        description=event.get("description") or None,
        has_meeting_link=bool(event.get("hangoutLink") or conference.get("entryPoints")),
        is_recurring=bool(event.get("recurringEventId")),
    )


def _read_json_source(env_var: str, path: Path) -> Dict[str, Any]:
    raw = os.getenv(env_var)
    if raw:
        return json.loads(raw)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class GoogleCalendarProvider:
    """Read-only Google Calendar client; auth problems degrade to empty results."""

    def __init__(self, credentials_path: Path = CREDENTIALS_PATH, token_path: Path = TOKEN_PATH,
                 max_results: int = CALENDAR_MAX_RESULTS):
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.max_results = max_results

    def _service(self):
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        try:
            client_cfg = _read_json_source("GOOGLE_CREDENTIALS", self.credentials_path)
            token = _read_json_source("GOOGLE_TOKEN", self.token_path)
        except (OSError, ValueError) as exc:
            logger.warning("Calendar auth failed: %s", exc)
            return None

        client = client_cfg.get("installed") or client_cfg.get("web") or {}
        creds = Credentials.from_authorized_user_info(
            info={
                "client_id": client.get("client_id"),
                "client_secret": client.get("client_secret"),
                "refresh_token": token.get("refresh_token"),
                "token": token.get("access_token") or token.get("token"),
                "token_uri": client.get("token_uri", DEFAULT_TOKEN_URI),
            },
            scopes=SCOPES,
        )
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    def list_calendars(self) -> List[CalendarInfo]:
        try:
            service = self._service()
            if service is None:
                return []
            items = service.calendarList().list().execute().get("items", [])
        except Exception as exc:
            logger.warning("Could not list calendars: %s", exc)
            return []
        return [
            CalendarInfo(
                id=item["id"],
                display_name=item.get("summary", ""),
                is_primary=bool(item.get("primary", False)),
            )
            for item in items
        ]

    def fetch_events(self, calendar_id: str = "primary", window_days: int = 14,
                     now: Optional[datetime] = None) -> CalendarFetch:
        now = now or datetime.now(timezone.utc)
        time_min = now - timedelta(days=LOOKBACK_DAYS)
        time_max = now + timedelta(days=window_days)
        try:
            service = self._service()
            if service is None:
                return CalendarFetch.degraded("calendar credentials unavailable")
            logger.info("Fetching calendar: %s (%d day window)", calendar_id, window_days)
            response = service.events().list(
                calendarId=calendar_id,
                timeMin=time_min.isoformat(),
                timeMax=time_max.isoformat(),
                maxResults=self.max_results,
                singleEvents=True,
                orderBy="startTime",
            ).execute()
        except Exception as exc:
            logger.warning("Could not load calendar %s: %s", calendar_id, exc)
            return CalendarFetch.degraded(str(exc))

        events = [normalize_google_event(e) for e in response.get("items", [])]
        events = [e for e in events if e.starts_at]  # cancelled instances carry no start
        logger.info("Loaded %d events (%d day window)", len(events), window_days)
        return CalendarFetch.ok(events)


def resolve_calendar_ids(calendars: List[CalendarInfo],
                         match_terms: Optional[List[str]] = None) -> List[str]:
    """Prefer the calendar named after the subject/project; otherwise "primary"."""
    terms = [t.lower() for t in (CALENDAR_MATCH_TERMS if match_terms is None else match_terms)]
    for cal in calendars:
        name = (cal.display_name or "").lower()
        if name and any(term in name for term in terms):
            return [cal.id]
    return ["primary"]


def fetch_multiple_calendars(provider, calendar_ids: List[str], window_days: int) -> CalendarFetch:
    """Merge events across calendars, sorted by start ascending.

    The result degrades only when every calendar failed.
    """
    events: List[CalendarEvent] = []
    failures: List[str] = []
    for calendar_id in calendar_ids:
        outcome = provider.fetch_events(calendar_id, window_days)
        if outcome.is_ok:
            events.extend(outcome.events)
        else:
            failures.append(f"{calendar_id}: {outcome.degraded_reason}")

    if failures and len(failures) == len(calendar_ids):
        return CalendarFetch.degraded("; ".join(failures))
    if failures:
        logger.warning("Some calendars failed: %s", "; ".join(failures))
    events.sort(key=lambda e: parse_event_start(e.starts_at))
    return CalendarFetch.ok(events)
