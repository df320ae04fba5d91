# agent/query_planner.py
"""
Query-time planning from raw question text.

Two jobs, both pure: decide how far ahead calendar data must be fetched, and
narrow retrieved calendar documents to a weekday or month the question names.
Classification is table driven; each table is evaluated in order.
"""
from __future__ import annotations

import calendar as _calendar
import logging
import re
from datetime import date, timedelta
from typing import List, Optional, Sequence, TypeVar

from digital_twin.services.calendar import parse_event_start
from digital_twin.services.corpus import CALENDAR

logger = logging.getLogger("digital_twin.query_planner")

DEFAULT_WINDOW_DAYS = 14
EXTENDED_WINDOW_DAYS = 60

MONTH_NAMES = ["january", "february", "march", "april", "may", "june",
               "july", "august", "september", "october", "november", "december"]
# Sunday=0 .. Saturday=6
WEEKDAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

MONTH_ABBREVIATIONS = {name[:3]: i + 1 for i, name in enumerate(MONTH_NAMES)}

TEMPORAL_PATTERN = re.compile(
    r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday|today|tomorrow|week|day|month|"
    r"january|february|march|april|may|june|july|august|september|october|november|december|"
    r"schedule|calendar|class|classes|events?|meeting)\b",
    re.IGNORECASE,
)

MONTH_DAY_PATTERN = re.compile(
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?|aug(?:ust)?|"
    r"sep(?:tember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\s+(\d{1,2})\b",
    re.IGNORECASE,
)

MONTH_PATTERNS = [
    (i + 1, re.compile(rf"\b{name}\b", re.IGNORECASE)) for i, name in enumerate(MONTH_NAMES)
]

WEEKDAY_PATTERN = re.compile(rf"\b({'|'.join(WEEKDAY_NAMES)})\b", re.IGNORECASE)
MONTH_NAME_PATTERN = re.compile(rf"\b({'|'.join(MONTH_NAMES)})\b", re.IGNORECASE)

FAR_FUTURE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"next month",
        r"in \d+ weeks",
        r"in a month",
        r"end of (the )?semester",
        r"rest of (the )?semester",
        r"spring break",
        r"finals",
        r"full (semester |year )?schedule",
        r"entire semester",
        r"all (my )?classes",
        r"how many times",
        r"how often",
    )
]

D = TypeVar("D")


# ---------------------------------------------------------------------------
# Window inference
# ---------------------------------------------------------------------------

def _month_end(year: int, month: int) -> date:
    return date(year, month, _calendar.monthrange(year, month)[1])


def _explicit_date_beyond(query: str, today: date, horizon: date) -> Optional[str]:
    m = MONTH_DAY_PATTERN.search(query)
    if not m:
        return None
    month = MONTH_ABBREVIATIONS[m.group(1).lower()[:3]]
    try:
        target = date(today.year, month, int(m.group(2)))
    except ValueError:
        return None
    if target < today:
        try:
            target = target.replace(year=today.year + 1)
        except ValueError:
            # Feb 29 rolled into a non-leap year
            target = date(today.year + 1, 3, 1)
    return m.group(0) if target > horizon else None


def _month_beyond(query: str, today: date, horizon: date) -> Optional[str]:
    for month, pattern in MONTH_PATTERNS:
        if not pattern.search(query):
            continue
        end = _month_end(today.year, month)
        if end < today:
            end = _month_end(today.year + 1, month)
        if end > horizon:
            return MONTH_NAMES[month - 1]
    return None


def _far_future_phrase(query: str) -> Optional[str]:
    for pattern in FAR_FUTURE_PATTERNS:
        if pattern.search(query):
            return pattern.pattern
    return None


def infer_window_days(query: str, today: Optional[date] = None) -> int:
    """Return 60 when the question needs lookahead past the 14-day window, else 14."""
    today = today or date.today()
    horizon = today + timedelta(days=DEFAULT_WINDOW_DAYS)
    query = query or ""

    hit = _explicit_date_beyond(query, today, horizon)
    if hit:
        logger.info('Extended window: "%s" is outside %d-day cache', hit, DEFAULT_WINDOW_DAYS)
        return EXTENDED_WINDOW_DAYS

    hit = _month_beyond(query, today, horizon)
    if hit:
        logger.info('Extended window: month "%s" extends beyond %d-day cache', hit, DEFAULT_WINDOW_DAYS)
        return EXTENDED_WINDOW_DAYS

    hit = _far_future_phrase(query)
    if hit:
        logger.info('Extended window: matched "%s"', hit)
        return EXTENDED_WINDOW_DAYS

    return DEFAULT_WINDOW_DAYS


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_temporal_query(query: str) -> bool:
    return bool(TEMPORAL_PATTERN.search(query or ""))


def requested_weekday(query: str) -> Optional[int]:
    m = WEEKDAY_PATTERN.search(query or "")
    return WEEKDAY_NAMES.index(m.group(1).lower()) if m else None


def requested_month(query: str) -> Optional[int]:
    m = MONTH_NAME_PATTERN.search(query or "")
    return MONTH_NAMES.index(m.group(1).lower()) + 1 if m else None


# ---------------------------------------------------------------------------
# Post-retrieval filters
# ---------------------------------------------------------------------------

def _weekday_number(value: str) -> int:
    return (parse_event_start(value).weekday() + 1) % 7


def filter_by_weekday(docs: Sequence[D], weekday: int) -> List[D]:
    """Keep calendar docs on `weekday` (Sunday=0); everything else passes through."""
    kept = [d for d in docs if d.type != CALENDAR or (d.date and _weekday_number(d.date) == weekday)]
    before = sum(1 for d in docs if d.type == CALENDAR)
    after = sum(1 for d in kept if d.type == CALENDAR)
    logger.info("Day filter [%s]: %d -> %d events", WEEKDAY_NAMES[weekday], before, after)
    return kept


def filter_by_month(docs: Sequence[D], month: int) -> List[D]:
    """Keep calendar docs in `month` (1-12); everything else passes through."""
    kept = [d for d in docs if d.type != CALENDAR or (d.date and parse_event_start(d.date).month == month)]
    before = sum(1 for d in docs if d.type == CALENDAR)
    after = sum(1 for d in kept if d.type == CALENDAR)
    logger.info("Month filter [%s]: %d -> %d events", MONTH_NAMES[month - 1], before, after)
    return kept


def apply_temporal_filters(query: str, docs: Sequence[D]) -> List[D]:
    """Day filter first, then month filter on its output."""
    out = list(docs)
    weekday = requested_weekday(query)
    if weekday is not None:
        out = filter_by_weekday(out, weekday)
    month = requested_month(query)
    if month is not None:
        out = filter_by_month(out, month)
    return out
