from __future__ import annotations

import argparse
import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from digital_twin.services.calendar import GoogleCalendarProvider
from digital_twin.services.corpus import DocumentStore
from digital_twin.services.vectorstore import OpenAIEmbedder
from .assembler import ResponseAssembler
from .lg_graph import build_graph
from .lg_nodes import PipelineDeps
from .lg_state import TwinState
from .lg_utils import OpenAIGenerator
from .retrieval import Retriever

logger = logging.getLogger("digital_twin.lg_controller")


class TwinController:
    """Answers questions about the subject: {answer, chunks, sources, confidence, trace}."""

    def __init__(self, embedder=None, generator=None, calendar_provider=None,
                 store: Optional[DocumentStore] = None):
        self.embedder = embedder or OpenAIEmbedder()
        self.store = store or DocumentStore(
            self.embedder,
            calendar_provider=calendar_provider if calendar_provider is not None else GoogleCalendarProvider(),
        )
        self.retriever = Retriever(self.store)
        self.assembler = ResponseAssembler(generator or OpenAIGenerator())
        self.graph: Any = build_graph(PipelineDeps(self.embedder, self.retriever, self.assembler))
        self._last_trace: Optional[Dict[str, Any]] = None
        logger.info("TwinController initialized")

    def respond(self, question: str, history: Optional[List[Dict[str, Any]]] = None,
                now: Optional[datetime] = None) -> Dict[str, Any]:
        question = (question or "").strip()
        if not question:
            raise ValueError("Message is required")

        logger.info("Q: %s", question)
        state: TwinState = {"question": question, "history": list(history or [])}
        if now is not None:
            state["now"] = now

        start = time.time()
        try:
            result = self.graph.invoke(state)
        except Exception as exc:
            logger.exception("Pipeline failed: %s", exc)
            raise
        latency_ms = (time.time() - start) * 1000.0

        trace = dict(result.get("trace") or {})
        trace["latency_ms"] = latency_ms
        self._last_trace = trace

        logger.info(
            "Answered in %.1f ms (window=%s, sources=%d, confidence=%.2f)",
            latency_ms,
            result.get("window_days"),
            len(result.get("sources", [])),
            result.get("confidence", 0.0),
        )
        return {
            "answer": result.get("answer", ""),
            "chunks": result.get("chunks", []),
            "sources": result.get("sources", []),
            "confidence": result.get("confidence", 0.0),
            "trace": trace,
        }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Ask the digital twin a single question.")
    parser.add_argument("question", help="Question to pose to the twin")
    args = parser.parse_args()

    controller = TwinController()
    result = controller.respond(args.question)
    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
