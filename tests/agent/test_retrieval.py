import math

import pytest

from digital_twin.agent.retrieval import (
    DEFAULT_CAP,
    TEMPORAL_CAP,
    WIDE_WINDOW_CAP,
    Retriever,
    extract_keywords,
    limits_for,
    score_documents,
)
from digital_twin.services.corpus import CALENDAR, STATIC, Document
from digital_twin.services.errors import DimensionMismatch

QUERY = [1.0, 0.0]


class StubStore:
    def __init__(self, docs):
        self.docs = tuple(docs)
        self.windows = []

    def load_corpus(self, requested_window_days=14):
        self.windows.append(requested_window_days)
        return self.docs


def _at_cosine(c):
    return [c, math.sqrt(1.0 - c * c)]


def _doc(doc_id, cos, doc_type=STATIC, content=None, date=None):
    return Document(id=doc_id, type=doc_type, content=content or doc_id, embedding=_at_cosine(cos), date=date)


def test_extract_keywords():
    assert extract_keywords("When do I graduate?") == ["when", "graduate"]
    assert extract_keywords("") == []


def test_limits():
    assert limits_for(False, 14) == (0.3, DEFAULT_CAP)
    assert limits_for(True, 14) == (0.2, TEMPORAL_CAP)
    assert limits_for(True, 60) == (0.2, WIDE_WINDOW_CAP)
    assert limits_for(False, 60) == (0.3, WIDE_WINDOW_CAP)


def test_graduation_question_surfaces_static_fact():
    grad = Document(id="education", type=STATIC, content="Graduates May 2026", embedding=[0.5, 0.866])
    algo = Document(id="calendar_1", type=CALENDAR, content="Event: Algorithms. When: Tuesday, Oct 20",
                    embedding=[0.0, 1.0], date="2026-10-20T12:30:00")
    store = StubStore([grad, algo])

    result = Retriever(store).retrieve(QUERY, "When do I graduate?", 14)

    assert [d.id for d in result.documents] == ["education"]
    top = result.documents[0]
    assert top.keyword_matches == 1
    assert top.score == pytest.approx(0.52, abs=1e-3)
    assert result.is_temporal is False
    assert result.threshold == 0.3
    assert store.windows == [14]


def test_keyword_and_calendar_boosts():
    static = _doc("s", 0.5, content="weekly standup notes")
    cal = _doc("c", 0.5, doc_type=CALENDAR, content="Event: standup", date="2026-10-20T09:00:00")
    ranked = score_documents(QUERY, "When is standup this week?", [static, cal], is_temporal=True)
    by_id = {d.id: d for d in ranked}
    # "standup" matches both; "week" only appears in the static text
    assert by_id["s"].keyword_matches == 2
    assert by_id["c"].keyword_matches == 1
    assert by_id["s"].score == pytest.approx(0.5 + 0.04)
    assert by_id["c"].score == pytest.approx(0.5 + 0.02 + 0.01)
    assert [d.id for d in ranked] == ["s", "c"]


def test_ties_keep_corpus_order():
    docs = [_doc(name, 0.8) for name in ("a", "b", "c")]
    ranked = score_documents(QUERY, "xyz", docs, is_temporal=False)
    assert [d.id for d in ranked] == ["a", "b", "c"]


def test_threshold_depends_on_temporal():
    docs = [_doc("weak", 0.25)]
    assert Retriever(StubStore(docs)).retrieve(QUERY, "Who am I?").documents == []
    temporal = Retriever(StubStore(docs)).retrieve(QUERY, "What's on my calendar?")
    assert [d.id for d in temporal.documents] == ["weak"]


@pytest.mark.parametrize("query,window,cap", [
    ("Who am I?", 14, 7),
    ("What's on my calendar?", 14, 20),
    ("What's on my calendar?", 60, 30),
])
def test_caps(query, window, cap):
    docs = [_doc(f"d{i}", 0.9) for i in range(40)]
    result = Retriever(StubStore(docs)).retrieve(QUERY, query, window)
    assert len(result.documents) == cap
    assert result.cap == cap
    assert [d.id for d in result.documents] == [f"d{i}" for i in range(cap)]


def test_results_sorted_and_above_threshold():
    docs = [_doc(f"d{i}", c) for i, c in enumerate([0.1, 0.9, 0.35, 0.6, 0.29, 0.31])]
    result = Retriever(StubStore(docs)).retrieve(QUERY, "Who am I?")
    scores = [d.score for d in result.documents]
    assert scores == sorted(scores, reverse=True)
    assert all(s >= result.threshold for s in scores)
    assert result.top_score == pytest.approx(0.9)


def test_empty_corpus():
    result = Retriever(StubStore([])).retrieve(QUERY, "anything")
    assert result.documents == []
    assert result.top_score is None


def test_dimension_mismatch_propagates():
    bad = Document(id="bad", type=STATIC, content="x", embedding=[1.0, 0.0, 0.0])
    with pytest.raises(DimensionMismatch):
        Retriever(StubStore([bad])).retrieve(QUERY, "anything")
