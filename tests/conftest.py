"""Shared fakes for the provider seams (embedding, generation, calendar)."""

import json
import threading
import time

import pytest

from digital_twin.services.calendar import CalendarEvent, CalendarFetch, CalendarInfo
from digital_twin.services.corpus import CorpusCache, DocumentStore, StaticFactStore
from digital_twin.services.errors import ProviderError
from digital_twin.services.vectorstore import StaticEmbeddingStore

DEFAULT_VECTOR = [0.0, 1.0]


class FakeEmbedder:
    """Returns the vector of the first rule whose substring appears in the text."""

    def __init__(self, rules=None, default=None, fail_on=None, delay=0.0, model="fake-embed"):
        self.model = model
        self.rules = list(rules or [])
        self.default = list(default or DEFAULT_VECTOR)
        self.fail_on = fail_on
        self.delay = delay
        self.batch_calls = []
        self.query_calls = []
        self._lock = threading.Lock()

    def _vector(self, text):
        for needle, vector in self.rules:
            if needle in text:
                return list(vector)
        return list(self.default)

    def embed(self, text):
        self.query_calls.append(text)
        if self.fail_on == "query":
            raise ProviderError("Failed to generate embedding")
        return self._vector(text)

    def embed_batch(self, texts):
        with self._lock:
            self.batch_calls.append(list(texts))
        if self.fail_on == "batch":
            raise ProviderError("Failed to generate batch embeddings")
        if self.delay:
            time.sleep(self.delay)
        return [self._vector(t) for t in texts]


class FakeGenerator:
    def __init__(self, reply="I graduate in May 2026.", fail=False):
        self.reply = reply
        self.fail = fail
        self.calls = []

    def generate(self, system_prompt, context, query, history=None):
        self.calls.append({"system_prompt": system_prompt, "context": context,
                           "query": query, "history": list(history or [])})
        if self.fail:
            raise ProviderError("Failed to generate response")
        return self.reply


class FakeCalendar:
    def __init__(self, events=None, calendars=None, degraded=None):
        self.events = list(events or [])
        self.calendars = list(calendars if calendars is not None else [CalendarInfo("twin-cal", "Digital Twin")])
        self.degraded = degraded
        self.fetches = []

    def list_calendars(self):
        return list(self.calendars)

    def fetch_events(self, calendar_id="primary", window_days=14):
        self.fetches.append((calendar_id, window_days))
        if self.degraded:
            return CalendarFetch.degraded(self.degraded)
        return CalendarFetch.ok(self.events)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_event(event_id, title, starts_at, ends_at=None, **kwargs):
    return CalendarEvent(id=event_id, title=title, starts_at=starts_at, ends_at=ends_at, **kwargs)


@pytest.fixture
def facts_file(tmp_path):
    path = tmp_path / "personal_data.json"
    path.write_text(json.dumps([
        {"id": "education", "content": "Graduates May 2026"},
        {"id": "skills", "content": "Python, TypeScript and LLM tooling"},
    ]), encoding="utf-8")
    return path


@pytest.fixture
def embedding_path(tmp_path):
    return tmp_path / "embeddings.json"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_store(facts_file, embedding_path, clock):
    def _make(embedder=None, calendar=None, facts=None):
        return DocumentStore(
            embedder or FakeEmbedder(),
            calendar_provider=calendar,
            facts=StaticFactStore(facts or facts_file),
            embedding_store=StaticEmbeddingStore(embedding_path),
            cache=CorpusCache(clock=clock),
            calendar_match_terms=["digital twin"],
        )
    return _make
