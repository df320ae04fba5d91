# services/corpus.py
"""
Unified document corpus: static personal facts + upcoming calendar events.

The DocumentStore owns a CorpusCache. Readers take an immutable snapshot; a
rebuild happens under a single lock so concurrent misses embed only once and
readers never see a half-merged corpus.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .calendar import (
    CalendarEvent,
    CalendarFetch,
    fetch_multiple_calendars,
    parse_event_start,
    resolve_calendar_ids,
)
from .errors import DataUnavailable
from .settings import PERSONAL_DATA_PATH
from .vectorstore import StaticEmbeddingStore, content_key, embedder_model

logger = logging.getLogger("digital_twin.corpus")

STATIC = "static"
CALENDAR = "calendar"

SHORT_WINDOW_TTL = 5 * 60        # seconds, cached window < 60 days
EXTENDED_WINDOW_TTL = 30 * 60    # seconds, cached window >= 60 days
EXTENDED_WINDOW_DAYS = 60


@dataclass(frozen=True)
class Document:
    id: str
    type: str
    content: str
    embedding: List[float] = field(default_factory=list)
    date: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_calendar(self) -> bool:
        return self.type == CALENDAR

    def to_row(self) -> Dict[str, Any]:
        row = {"id": self.id, "type": self.type, "content": self.content,
               "content_key": content_key(self.content), "embedding": list(self.embedding)}
        if self.date:
            row["date"] = self.date
        return row


# ---------------------------------------------------------------------------
# Calendar event -> Document
# ---------------------------------------------------------------------------

def _format_when(start, all_day: bool) -> str:
    when = f"{start:%A}, {start:%b} {start.day}"
    if not all_day:
        hour = start.hour % 12 or 12
        when += f", {hour}:{start.minute:02d} {'AM' if start.hour < 12 else 'PM'}"
    return when


def event_to_document(event: CalendarEvent) -> Document:
    """Render an event as sentences; identities and links are reduced to counts/flags."""
    start = parse_event_start(event.starts_at)
    parts = [f"Event: {event.title}", f"When: {_format_when(start, event.all_day)}"]

    if not event.all_day and event.ends_at:
        end = parse_event_start(event.ends_at)
        parts.append(f"Duration: {round((end - start).total_seconds() / 60)} minutes")
    if event.location:
        parts.append(f"Location: {event.location}")
    if event.attendee_count > 0:
        parts.append(f"Attendees: {event.attendee_count} people")
    if event.description:
        parts.append(f"Description: {event.description}")
    if event.has_meeting_link:
        parts.append("Meeting Link: Available")
    if event.is_recurring:
        parts.append("Recurring: Yes")

    return Document(
        id=f"calendar_{event.id}",
        type=CALENDAR,
        content=". ".join(parts),
        date=event.starts_at,
        title=event.title,
    )


# ---------------------------------------------------------------------------
# Static facts
# ---------------------------------------------------------------------------

class StaticFactStore:
    """Read-only personal facts file.

    Accepts either a list of {"id", "content", ...} objects or an {id: content} mapping.
    """

    def __init__(self, path: Path | str = PERSONAL_DATA_PATH):
        self.path = Path(path)

    def load(self) -> List[Document]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            raise DataUnavailable(f"Personal data unreadable: {self.path} ({exc})") from exc

        if isinstance(raw, dict):
            items = [{"id": k, "content": v} for k, v in raw.items()]
        elif isinstance(raw, list):
            items = raw
        else:
            raise DataUnavailable(f"Personal data must be a list or an object: {self.path}")

        docs = []
        for idx, item in enumerate(items):
            if not isinstance(item, dict) or not isinstance(item.get("content") or "", str):
                raise DataUnavailable(f"Personal data entry {idx} has no text content: {self.path}")
            content = (item.get("content") or "").strip()
            if not content:
                continue
            docs.append(Document(id=str(item.get("id") or f"static_{idx}"), type=STATIC, content=content))
        return docs


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class CorpusCache:
    """Last assembled corpus plus the window and time it was fetched for."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._state: Tuple[Tuple[Document, ...], Optional[float], int] = ((), None, 0)

    @property
    def documents(self) -> Tuple[Document, ...]:
        return self._state[0]

    @property
    def fetched_at(self) -> Optional[float]:
        return self._state[1]

    @property
    def window_days(self) -> int:
        return self._state[2]

    @staticmethod
    def ttl_for(window_days: int) -> float:
        return EXTENDED_WINDOW_TTL if window_days >= EXTENDED_WINDOW_DAYS else SHORT_WINDOW_TTL

    def lookup(self, requested_window_days: int) -> Optional[Tuple[Document, ...]]:
        """Return the cached corpus if it is populated, fresh, and wide enough."""
        docs, fetched_at, window = self._state
        if not docs or fetched_at is None:
            return None
        if self._clock() - fetched_at > self.ttl_for(window):
            return None
        if window < requested_window_days:
            return None
        return docs

    def replace(self, documents, window_days: int) -> None:
        # single tuple assignment, readers see old or new state, never a mix
        self._state = (tuple(documents), self._clock(), window_days)

    def invalidate(self) -> None:
        self._state = ((), None, 0)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class DocumentStore:
    def __init__(self, embedder, calendar_provider=None, facts: Optional[StaticFactStore] = None,
                 embedding_store: Optional[StaticEmbeddingStore] = None,
                 cache: Optional[CorpusCache] = None, calendar_match_terms: Optional[List[str]] = None):
        self.embedder = embedder
        self.calendar_provider = calendar_provider
        self.facts = facts or StaticFactStore()
        self.embedding_store = embedding_store or StaticEmbeddingStore()
        self.cache = cache or CorpusCache()
        self.calendar_match_terms = calendar_match_terms
        self._rebuild_lock = threading.Lock()

    def load_corpus(self, requested_window_days: int = 14) -> Tuple[Document, ...]:
        cached = self.cache.lookup(requested_window_days)
        if cached is not None:
            logger.info("Using cached corpus (%d-day window)", self.cache.window_days)
            return cached

        with self._rebuild_lock:
            cached = self.cache.lookup(requested_window_days)
            if cached is not None:
                return cached
            logger.info("Rebuilding corpus (requested: %d days, cached: %d days)",
                        requested_window_days, self.cache.window_days)
            try:
                return self._rebuild(requested_window_days)
            except Exception:
                logger.exception("Corpus rebuild failed; falling back to persisted static data")
                return self._fallback()

    def ensure_static(self) -> List[Document]:
        """Embed any static facts missing from the side-store."""
        with self._rebuild_lock:
            return self._static_documents()

    def refresh_static(self) -> List[Document]:
        """Drop the cache and re-embed every static fact."""
        with self._rebuild_lock:
            self.cache.invalidate()
            return self._static_documents(force=True)

    # -- internals ---------------------------------------------------------

    def _rebuild(self, window_days: int) -> Tuple[Document, ...]:
        static_docs = self._static_documents()
        outcome = self._calendar_events(window_days)
        calendar_docs = self._embed([event_to_document(e) for e in outcome.events])
        if static_docs and calendar_docs and len(static_docs[0].embedding) != len(calendar_docs[0].embedding):
            logger.warning("Stored static vectors have %d dims, embedder gives %d; re-embedding facts",
                           len(static_docs[0].embedding), len(calendar_docs[0].embedding))
            static_docs = self._static_documents(force=True)

        corpus = tuple(static_docs) + tuple(calendar_docs)
        if outcome.is_ok:
            self.cache.replace(corpus, window_days)
        else:
            logger.warning("Calendar degraded (%s); serving static facts only", outcome.degraded_reason)
        logger.info("Total: %d documents (%d static + %d calendar)",
                    len(corpus), len(static_docs), len(calendar_docs))
        return corpus

    def _static_documents(self, force: bool = False) -> List[Document]:
        facts = self.facts.load()
        persisted = {} if force else {
            (row.get("id"), row.get("content_key")): row.get("embedding")
            for row in (self.embedding_store.load(model=self._model) or [])
        }

        docs: List[Optional[Document]] = []
        missing: List[Tuple[int, Document]] = []
        for fact in facts:
            vector = persisted.get((fact.id, content_key(fact.content)))
            if vector:
                docs.append(replace(fact, embedding=list(vector)))
            else:
                docs.append(None)
                missing.append((len(docs) - 1, fact))

        if missing:
            logger.info("Generating embeddings for %d static documents...", len(missing))
            embedded = self._embed([fact for _, fact in missing])
            for (idx, _), doc in zip(missing, embedded):
                docs[idx] = doc
            if not force and any(len(d.embedding) != len(embedded[0].embedding) for d in docs):
                logger.warning("Stored static vectors do not match the embedder; re-embedding all facts")
                return self._static_documents(force=True)
            self.embedding_store.save([d.to_row() for d in docs], model=self._model)
        else:
            logger.info("Loaded %d static documents with embeddings", len(docs))
            if len(persisted) != len(docs):
                # facts were removed; drop their stale vectors
                self.embedding_store.save([d.to_row() for d in docs], model=self._model)
        return docs

    def _calendar_events(self, window_days: int) -> CalendarFetch:
        if self.calendar_provider is None:
            return CalendarFetch.ok([])
        calendars = self.calendar_provider.list_calendars()
        for cal in calendars:
            logger.info("  - %s%s", cal.display_name, " [PRIMARY]" if cal.is_primary else "")
        calendar_ids = resolve_calendar_ids(calendars, self.calendar_match_terms)
        return fetch_multiple_calendars(self.calendar_provider, calendar_ids, window_days)

    @property
    def _model(self) -> Optional[str]:
        return embedder_model(self.embedder)

    def _embed(self, docs: List[Document]) -> List[Document]:
        if not docs:
            return []
        vectors = self.embedder.embed_batch([d.content for d in docs])
        return [replace(d, embedding=list(v)) for d, v in zip(docs, vectors)]

    def _fallback(self) -> Tuple[Document, ...]:
        rows = self.embedding_store.load(model=self._model)
        if not rows:
            logger.error("No persisted static embeddings available; serving an empty corpus")
            return ()
        return tuple(
            Document(id=str(r.get("id")), type=r.get("type", STATIC), content=r.get("content", ""),
                     embedding=list(r.get("embedding") or []))
            for r in rows
        )
