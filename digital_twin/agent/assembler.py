# agent/assembler.py
"""
Grounding context, generation, confidence and display chunking.

Confidence is derived, not learned: a tier from the best retrieval score,
small bonuses for volume and cross-source support, and a hard cap when the
answer itself admits it does not know.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from digital_twin.services.corpus import CALENDAR
from .lc_prompts import SYSTEM
from .lg_utils import HISTORY_TURNS

logger = logging.getLogger("digital_twin.assembler")

NO_DATA_MARKER = "No relevant personal data found."
SOURCE_SEPARATOR = "\n---\n"
MAX_CHUNK_LENGTH = 400
SNIPPET_LENGTH = 100

# (exclusive lower bound on top score, confidence)
CONFIDENCE_TIERS = [(0.45, 0.9), (0.40, 0.75), (0.35, 0.6), (0.30, 0.45)]
BASE_CONFIDENCE = 0.3
EMPTY_CONFIDENCE = 0.1
BONUS = 0.05
UNCERTAIN_CAP = 0.3
UNCERTAINTY_PHRASES = ["don't have", "not sure", "don't know", "no information", "can't find"]

_SENTENCE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")


@dataclass
class TwinAnswer:
    answer: str
    chunks: List[str]
    sources: List[Dict[str, Any]] = field(default_factory=list)
    confidence: float = EMPTY_CONFIDENCE

    def to_dict(self) -> Dict[str, Any]:
        return {"answer": self.answer, "chunks": list(self.chunks),
                "sources": list(self.sources), "confidence": self.confidence}


def current_datetime_statement(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    hour = now.hour % 12 or 12
    return (f"Current date and time: {now:%A}, {now:%B} {now.day}, {now.year} "
            f"at {hour:02d}:{now.minute:02d} {'AM' if now.hour < 12 else 'PM'}")


def build_context(docs: Sequence[Any]) -> str:
    if not docs:
        return NO_DATA_MARKER
    return SOURCE_SEPARATOR.join(
        f"[Source {idx} - {doc.type}]\n{doc.content}\n" for idx, doc in enumerate(docs, start=1)
    )


def calculate_confidence(top_score: Optional[float], doc_count: int,
                         has_calendar_and_static: bool, response_text: str) -> float:
    if doc_count == 0 or top_score is None:
        return EMPTY_CONFIDENCE

    confidence = BASE_CONFIDENCE
    for bound, tier in CONFIDENCE_TIERS:
        if top_score > bound:
            confidence = tier
            break

    if doc_count >= 5:
        confidence = min(confidence + BONUS, 1.0)
    if doc_count >= 10:
        confidence = min(confidence + BONUS, 1.0)
    if has_calendar_and_static:
        confidence = min(confidence + BONUS, 1.0)

    text = (response_text or "").lower()
    if any(p in text for p in UNCERTAINTY_PHRASES):
        confidence = min(confidence, UNCERTAIN_CAP)
    return confidence


def confidence_for(docs: Sequence[Any], response_text: str) -> float:
    top = max((d.score for d in docs), default=None)
    has_calendar = any(d.type == CALENDAR for d in docs)
    has_static = any(d.type != CALENDAR for d in docs)
    return calculate_confidence(top, len(docs), has_calendar and has_static, response_text)


def split_into_chunks(text: str, max_len: int = MAX_CHUNK_LENGTH) -> List[str]:
    """Greedy sentence packing; a sentence is never split across chunks."""
    if len(text) <= max_len:
        return [text]

    chunks: List[str] = []
    current = ""
    for sentence in _SENTENCE.findall(text):
        if len(current + sentence) > max_len and current:
            chunks.append(current.strip())
            current = sentence
        else:
            current += sentence
    if current.strip():
        chunks.append(current.strip())
    return chunks


def source_previews(docs: Sequence[Any]) -> List[Dict[str, Any]]:
    return [
        {"type": d.type, "snippet": d.content[:SNIPPET_LENGTH] + "...", "relevance_score": d.score}
        for d in docs
    ]


class ResponseAssembler:
    def __init__(self, generator, system_prompt: str = SYSTEM):
        self.generator = generator
        self.system_prompt = system_prompt

    def grounding_context(self, docs: Sequence[Any], now: Optional[datetime] = None) -> str:
        return current_datetime_statement(now) + "\n\n" + build_context(docs)

    def assemble(self, query: str, docs: Sequence[Any],
                 history: Optional[Sequence[Dict[str, Any]]] = None,
                 now: Optional[datetime] = None) -> TwinAnswer:
        docs = list(getattr(docs, "documents", docs))  # RetrievalResult or a plain list
        context = self.grounding_context(docs, now)
        answer = self.generator.generate(
            system_prompt=self.system_prompt,
            context=context,
            query=query,
            history=list(history or [])[-HISTORY_TURNS:],
        )
        confidence = confidence_for(docs, answer)
        logger.info("Answer composed from %d sources (confidence=%.2f)", len(docs), confidence)
        return TwinAnswer(
            answer=answer,
            chunks=split_into_chunks(answer),
            sources=source_previews(docs),
            confidence=confidence,
        )
