# agent/lg_state.py
from __future__ import annotations
from typing import TypedDict, List, Any, Dict, Optional


class TwinState(TypedDict, total=False):
    """
    Shared LangGraph state for one question.

    Each node copies the incoming state and adds its own keys; nothing here is
    cached across questions.
    """
    # request
    question: str
    history: List[Dict[str, Any]]
    now: Any  # datetime; injectable so temporal logic is testable

    # planning + retrieval
    window_days: int
    query_embedding: List[float]
    retrieval: Any  # RetrievalResult
    documents: List[Any]  # ScoredDocument after temporal filtering

    # outputs
    answer: str
    chunks: List[str]
    sources: List[Dict[str, Any]]
    confidence: float
    trace: Dict[str, Any]
