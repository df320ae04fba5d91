# agent/retrieval.py
"""Hybrid retrieval: cosine similarity plus small keyword and calendar boosts."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from digital_twin.services.corpus import CALENDAR, Document, DocumentStore
from digital_twin.services.vector_math import cosine_similarity
from .query_planner import DEFAULT_WINDOW_DAYS, is_temporal_query

logger = logging.getLogger("digital_twin.retrieval")

KEYWORD_BOOST = 0.02
CALENDAR_TEMPORAL_BOOST = 0.01
TEMPORAL_THRESHOLD = 0.2
DEFAULT_THRESHOLD = 0.3
WIDE_WINDOW_CAP = 30
TEMPORAL_CAP = 20
DEFAULT_CAP = 7
MIN_KEYWORD_LENGTH = 4

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


@dataclass(frozen=True)
class ScoredDocument:
    document: Document
    score: float
    semantic_score: float
    keyword_matches: int

    @property
    def id(self) -> str:
        return self.document.id

    @property
    def type(self) -> str:
        return self.document.type

    @property
    def content(self) -> str:
        return self.document.content

    @property
    def date(self) -> Optional[str]:
        return self.document.date

    @property
    def title(self) -> Optional[str]:
        return self.document.title


@dataclass
class RetrievalResult:
    documents: List[ScoredDocument] = field(default_factory=list)
    is_temporal: bool = False
    threshold: float = DEFAULT_THRESHOLD
    cap: int = DEFAULT_CAP
    window_days: int = DEFAULT_WINDOW_DAYS

    @property
    def top_score(self) -> Optional[float]:
        return max((d.score for d in self.documents), default=None)


def extract_keywords(query_text: str) -> List[str]:
    cleaned = _NON_ALNUM.sub("", (query_text or "").lower())
    return [w for w in cleaned.split() if len(w) >= MIN_KEYWORD_LENGTH]


def limits_for(is_temporal: bool, window_days: int) -> tuple[float, int]:
    """(threshold, cap) for a query."""
    threshold = TEMPORAL_THRESHOLD if is_temporal else DEFAULT_THRESHOLD
    if window_days > DEFAULT_WINDOW_DAYS:
        cap = WIDE_WINDOW_CAP
    elif is_temporal:
        cap = TEMPORAL_CAP
    else:
        cap = DEFAULT_CAP
    return threshold, cap


def score_documents(query_embedding: Sequence[float], query_text: str, corpus: Sequence[Document],
                    is_temporal: bool) -> List[ScoredDocument]:
    keywords = extract_keywords(query_text)
    scored = []
    for doc in corpus:
        semantic = cosine_similarity(query_embedding, doc.embedding)
        content_lower = doc.content.lower()
        matches = sum(1 for kw in keywords if kw in content_lower)
        boost = CALENDAR_TEMPORAL_BOOST if doc.type == CALENDAR and is_temporal else 0.0
        scored.append(ScoredDocument(
            document=doc,
            score=semantic + matches * KEYWORD_BOOST + boost,
            semantic_score=semantic,
            keyword_matches=matches,
        ))
    # sorted() is stable, so equal scores keep corpus order
    return sorted(scored, key=lambda d: d.score, reverse=True)


class Retriever:
    def __init__(self, store: DocumentStore):
        self.store = store

    def retrieve(self, query_embedding: Sequence[float], query_text: str,
                 window_days: int = DEFAULT_WINDOW_DAYS) -> RetrievalResult:
        corpus = self.store.load_corpus(window_days)
        temporal = is_temporal_query(query_text)
        threshold, cap = limits_for(temporal, window_days)

        ranked = score_documents(query_embedding, query_text, corpus, temporal)
        results = [d for d in ranked if d.score >= threshold][:cap]

        logger.info(
            "Retrieved %d docs | Top score: %s | Temporal: %s",
            len(results),
            f"{results[0].score:.3f}" if results else "n/a",
            temporal,
        )
        return RetrievalResult(documents=results, is_temporal=temporal, threshold=threshold,
                               cap=cap, window_days=window_days)
