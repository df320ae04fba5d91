"""
LangGraph node implementations for the question pipeline.

Nodes are thin: each one reads the state, calls into query_planner,
retrieval or assembler, and returns a copy of the state with its keys set.
Providers are passed in through PipelineDeps so tests can swap in fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict
import time

from .assembler import ResponseAssembler
from .lg_state import TwinState
from .query_planner import apply_temporal_filters, infer_window_days
from .retrieval import Retriever


@dataclass
class PipelineDeps:
    embedder: Any
    retriever: Retriever
    assembler: ResponseAssembler


def _now(state: TwinState) -> datetime:
    return state.get("now") or datetime.now()


def plan_window(state: TwinState, deps: PipelineDeps) -> TwinState:
    """Decide how many days of calendar data this question needs."""
    out = dict(state)
    out["window_days"] = infer_window_days(state["question"], today=_now(state).date())
    return out


def embed_query(state: TwinState, deps: PipelineDeps) -> TwinState:
    """Embed the live question; provider errors propagate to the caller."""
    out = dict(state)
    out["query_embedding"] = deps.embedder.embed(state["question"])
    return out


def retrieve(state: TwinState, deps: PipelineDeps) -> TwinState:
    result = deps.retriever.retrieve(state["query_embedding"], state["question"], state["window_days"])
    out = dict(state)
    out["retrieval"] = result
    out["documents"] = list(result.documents)
    return out


def filter_temporal(state: TwinState, deps: PipelineDeps) -> TwinState:
    """Narrow calendar hits to the weekday/month the question names."""
    out = dict(state)
    out["documents"] = apply_temporal_filters(state["question"], state.get("documents", []))
    return out


def compose_answer(state: TwinState, deps: PipelineDeps) -> TwinState:
    result = deps.assembler.assemble(
        state["question"],
        state.get("documents", []),
        history=state.get("history"),
        now=_now(state),
    )
    out = dict(state)
    out["answer"] = result.answer
    out["chunks"] = result.chunks
    out["sources"] = result.sources
    out["confidence"] = result.confidence
    return out


def finalize(state: TwinState, deps: PipelineDeps) -> TwinState:
    """Attach a diagnostic trace of how the answer was retrieved."""
    retrieval = state.get("retrieval")
    trace: Dict[str, Any] = {
        "plan": "hybrid retrieval + temporal filter + grounded generation",
        "window_days": state.get("window_days"),
        "is_temporal": getattr(retrieval, "is_temporal", None),
        "threshold": getattr(retrieval, "threshold", None),
        "cap": getattr(retrieval, "cap", None),
        "retrieved": len(getattr(retrieval, "documents", []) or []),
        "after_filter": len(state.get("documents", [])),
        "hits": [
            {"id": d.id, "type": d.type, "title": d.title, "score": round(d.score, 4),
             "semantic": round(d.semantic_score, 4), "keywords": d.keyword_matches}
            for d in state.get("documents", [])
        ],
        "timestamp": time.time(),
    }
    out = dict(state)
    out["trace"] = trace
    return out
