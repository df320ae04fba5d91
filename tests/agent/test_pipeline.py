from datetime import datetime

import pytest

from digital_twin.agent.assembler import NO_DATA_MARKER
from digital_twin.agent.lg_controller import TwinController
from digital_twin.services.corpus import CALENDAR
from digital_twin.services.errors import ProviderError

from conftest import FakeCalendar, FakeEmbedder, FakeGenerator, make_event

NOW = datetime(2026, 10, 19, 9, 0)  # Monday morning

EVENTS = [
    make_event("1", "Algorithms", "2026-10-20T12:30:00", "2026-10-20T13:45:00", location="Siebel 1404"),
    make_event("2", "Senior Design", "2026-10-21T16:00:00", "2026-10-21T17:00:00"),
]


def _embedder(**kwargs):
    return FakeEmbedder(rules=[("graduate?", [1.0, 0.0]), ("Graduates", [0.5, 0.866])], **kwargs)


@pytest.fixture
def calendar():
    return FakeCalendar(events=EVENTS)


@pytest.fixture
def build(make_store, calendar):
    def _build(embedder=None, generator=None, facts=None, cal=calendar):
        embedder = embedder or _embedder()
        store = make_store(embedder=embedder, calendar=cal, facts=facts)
        return TwinController(embedder=embedder, generator=generator or FakeGenerator(), store=store)
    return _build


def test_graduation_question(build):
    generator = FakeGenerator(reply="I graduate in May 2026.")
    result = build(generator=generator).respond("When do I graduate?", now=NOW)

    assert result["answer"] == "I graduate in May 2026."
    assert result["chunks"] == ["I graduate in May 2026."]
    assert result["confidence"] == pytest.approx(0.9)
    assert [s["type"] for s in result["sources"]] == ["static"]
    assert result["sources"][0]["snippet"] == "Graduates May 2026..."

    trace = result["trace"]
    assert trace["window_days"] == 14
    assert trace["is_temporal"] is False
    assert [h["id"] for h in trace["hits"]] == ["education"]
    assert trace["latency_ms"] >= 0

    context = generator.calls[0]["context"]
    assert context.startswith("Current date and time: Monday, October 19, 2026 at 09:00 AM")
    assert "Graduates May 2026" in context
    assert "Algorithms" not in context


def test_no_relevant_data(build, tmp_path):
    generator = FakeGenerator(reply="I don't have that info.")
    result = build(generator=generator, facts=tmp_path / "missing.json", cal=FakeCalendar()).respond(
        "What is my favorite color?", now=NOW)

    assert NO_DATA_MARKER in generator.calls[0]["context"]
    assert result["sources"] == []
    assert result["confidence"] == pytest.approx(0.1)


def test_weekday_question_keeps_only_that_day(build):
    generator = FakeGenerator(reply="On Tuesday I have Algorithms.")
    result = build(generator=generator).respond("What do I have on Tuesday?", now=NOW)

    hits = result["trace"]["hits"]
    assert [(h["id"], h["title"]) for h in hits if h["type"] == CALENDAR] == [("calendar_1", "Algorithms")]
    assert result["trace"]["is_temporal"] is True
    assert result["trace"]["after_filter"] < result["trace"]["retrieved"]
    context = generator.calls[0]["context"]
    assert "Algorithms" in context
    assert "Senior Design" not in context


def test_month_question_widens_window(build, calendar):
    result = build().respond("What classes do I have in March?", now=NOW)
    assert result["trace"]["window_days"] == 60
    assert calendar.fetches[-1] == ("twin-cal", 60)


def test_degraded_calendar_still_answers(build):
    result = build(cal=FakeCalendar(degraded="token expired")).respond("When do I graduate?", now=NOW)
    assert result["confidence"] == pytest.approx(0.9)


def test_history_is_trimmed(build):
    generator = FakeGenerator()
    history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"} for i in range(9)]
    build(generator=generator).respond("When do I graduate?", history=history, now=NOW)
    assert [t["content"] for t in generator.calls[0]["history"]] == [f"turn {i}" for i in range(3, 9)]


def test_query_embedding_failure_propagates(build):
    with pytest.raises(ProviderError):
        build(embedder=_embedder(fail_on="query")).respond("When do I graduate?", now=NOW)


def test_generation_failure_propagates(build):
    with pytest.raises(ProviderError):
        build(generator=FakeGenerator(fail=True)).respond("When do I graduate?", now=NOW)


@pytest.mark.parametrize("question", ["", "   ", None])
def test_blank_question_rejected(build, question):
    with pytest.raises(ValueError):
        build().respond(question)
