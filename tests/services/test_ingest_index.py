import pytest

from digital_twin.services.errors import DataUnavailable
from digital_twin.services.ingest_index import ensure_index, preview_calendars

from conftest import FakeCalendar, FakeEmbedder, make_event


def test_ensure_index_embeds_once(facts_file, embedding_path):
    first = FakeEmbedder()
    assert ensure_index(facts_file, embedder=first, embedding_path=embedding_path) == 2
    assert len(first.batch_calls) == 1

    second = FakeEmbedder()
    assert ensure_index(facts_file, embedder=second, embedding_path=embedding_path) == 2
    assert second.batch_calls == []


def test_ensure_index_rebuild(facts_file, embedding_path):
    ensure_index(facts_file, embedder=FakeEmbedder(), embedding_path=embedding_path)
    again = FakeEmbedder()
    ensure_index(facts_file, rebuild=True, embedder=again, embedding_path=embedding_path)
    assert len(again.batch_calls[0]) == 2


def test_ensure_index_missing_data(tmp_path, embedding_path):
    with pytest.raises(DataUnavailable):
        ensure_index(tmp_path / "nope.json", embedder=FakeEmbedder(), embedding_path=embedding_path)


def test_preview_calendars(capsys):
    calendar = FakeCalendar(events=[make_event("1", "Algorithms", "2026-10-20T12:30:00", "2026-10-20T13:45:00")])
    preview_calendars(14, provider=calendar)
    out = capsys.readouterr().out
    assert "Digital Twin (twin-cal)" in out
    assert "Event: Algorithms. When: Tuesday, Oct 20, 12:30 PM" in out


def test_preview_calendars_degraded(capsys):
    preview_calendars(14, provider=FakeCalendar(degraded="no token"))
    assert "degraded" in capsys.readouterr().out
