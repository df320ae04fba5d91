"""
LangGraph assembly for the question pipeline.

    plan_window -> embed_query -> retrieve -> filter_temporal -> compose_answer -> finalize

The flow is linear; the graph keeps each stage addressable in traces and
lets the controller stay unaware of stage order.
"""
from __future__ import annotations

from langgraph.graph import StateGraph, END

from .lg_state import TwinState
from . import lg_nodes
from .lg_nodes import PipelineDeps

STAGES = [
    ("plan_window", lg_nodes.plan_window),
    ("embed_query", lg_nodes.embed_query),
    ("retrieve", lg_nodes.retrieve),
    ("filter_temporal", lg_nodes.filter_temporal),
    ("compose_answer", lg_nodes.compose_answer),
    ("finalize", lg_nodes.finalize),
]


def _bind(fn, deps: PipelineDeps):
    def node(state: TwinState) -> TwinState:
        return fn(state, deps)
    node.__name__ = fn.__name__
    return node


def build_graph(deps: PipelineDeps):
    """Return a compiled LangGraph pipeline bound to the given providers."""
    graph = StateGraph(TwinState)
    for name, fn in STAGES:
        graph.add_node(name, _bind(fn, deps))

    graph.set_entry_point(STAGES[0][0])
    for (name, _), (next_name, _) in zip(STAGES, STAGES[1:]):
        graph.add_edge(name, next_name)
    graph.add_edge(STAGES[-1][0], END)
    return graph.compile()
