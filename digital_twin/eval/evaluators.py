# digital_twin/eval/evaluators.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

HALLUCINATION_CATEGORY = "hallucination_test"


@dataclass
class EvalCase:
    name: str
    query: str
    expected_topics: List[str] = field(default_factory=list)
    should_not_contain: List[str] = field(default_factory=list)
    minimum_confidence: float = 0.0
    category: str = "general"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EvalCase":
        return cls(
            name=str(row.get("name") or row.get("query")),
            query=str(row["query"]),
            expected_topics=list(row.get("expected_topics") or []),
            should_not_contain=list(row.get("should_not_contain") or []),
            minimum_confidence=float(row.get("minimum_confidence", 0.0)),
            category=str(row.get("category", "general")),
        )


@dataclass
class EvalResult:
    case: str
    category: str
    passed: bool
    answer: str = ""
    confidence: Optional[float] = None
    sources: Optional[int] = None
    topic_coverage: Optional[float] = None
    topics_found: List[str] = field(default_factory=list)
    forbidden_found: List[str] = field(default_factory=list)
    error: Optional[str] = None


def topic_threshold(expected_topics: List[str]) -> float:
    """Short topic lists must all appear; longer ones need half."""
    return 1.0 if len(expected_topics) <= 2 else 0.5


def evaluate_response(case: EvalCase, response: Dict[str, Any]) -> EvalResult:
    """Score one pipeline response against a case (topics, forbidden text, confidence, sources)."""
    answer = response.get("answer") or ""
    answer_low = answer.lower()
    sources = response.get("sources") or []
    confidence = float(response.get("confidence") or 0.0)

    found = [t for t in case.expected_topics if t.lower() in answer_low]
    forbidden = [t for t in case.should_not_contain if t.lower() in answer_low]
    coverage = len(found) / len(case.expected_topics) if case.expected_topics else 1.0

    # an honest "I don't know" with no sources is fine for hallucination probes
    if case.category == HALLUCINATION_CATEGORY:
        has_sources = bool(found) or len(sources) >= 1
    else:
        has_sources = len(sources) >= 1

    passed = (
        coverage >= topic_threshold(case.expected_topics)
        and not forbidden
        and confidence >= case.minimum_confidence
        and has_sources
    )
    return EvalResult(
        case=case.name,
        category=case.category,
        passed=passed,
        answer=answer,
        confidence=confidence,
        sources=len(sources),
        topic_coverage=coverage,
        topics_found=found,
        forbidden_found=forbidden,
    )


def summarize(results: List[EvalResult]) -> Dict[str, Any]:
    total = len(results)
    passed = sum(1 for r in results if r.passed)

    categories: Dict[str, Dict[str, int]] = {}
    for r in results:
        stats = categories.setdefault(r.category, {"passed": 0, "total": 0})
        stats["total"] += 1
        stats["passed"] += int(r.passed)

    def _avg(values):
        values = [v for v in values if v is not None]
        return sum(values) / len(values) if values else 0.0

    return {
        "total": total,
        "passed": passed,
        "failed": total - passed,
        "success_rate": passed / total if total else 0.0,
        "categories": categories,
        "avg_confidence": _avg([r.confidence for r in results]),
        "avg_topic_coverage": _avg([r.topic_coverage for r in results]),
        "avg_sources": _avg([r.sources for r in results]),
        "hallucination_rate": (sum(1 for r in results if r.forbidden_found) / total) if total else 0.0,
    }
