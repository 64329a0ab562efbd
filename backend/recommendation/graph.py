"""LangGraph StateGraph assembly for the recommendation pipeline.

Wires the orchestrator, the worker pool, the aggregator and either the
synthesizer or the fallback into a compiled graph:

    orchestrator -> workers -> aggregator -> synthesizer | fallback -> END

Node functions are closures over the completion client and the pipeline
configuration, so the graph itself holds no global state.
"""

from __future__ import annotations

import logging
from typing import Any

from langgraph.graph import END, START, StateGraph

from recommendation.completion import CompletionClient
from recommendation.errors import SchemaViolation
from recommendation.nodes.aggregator import aggregate_outcomes, build_fallback_recommendation
from recommendation.nodes.orchestrator import run_orchestrator
from recommendation.nodes.synthesizer import run_synthesis
from recommendation.nodes.worker_pool import run_worker_pool
from recommendation.settings import PipelineConfig
from recommendation.state import PipelinePhase, RecommendationState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Routing helpers
# ---------------------------------------------------------------------------


def _route_after_aggregation(state: RecommendationState) -> str:
    """Route to synthesis when any worker succeeded, else to the fallback."""
    if state.get("successful"):
        return "synthesizer"
    return "fallback"


# ---------------------------------------------------------------------------
# Graph builder
# ---------------------------------------------------------------------------


def build_recommendation_graph(client: CompletionClient, config: PipelineConfig):
    """Assemble and compile the recommendation StateGraph.

    Returns
    -------
    CompiledGraph
        The compiled LangGraph ready for ``.ainvoke()``.
    """

    async def orchestrator_node(state: RecommendationState) -> dict[str, Any]:
        plan = await run_orchestrator(client, config, state["request"])
        return {
            "analysis": plan.analysis,
            "tasks": plan.tasks,
            "phase": PipelinePhase.FANNING_OUT,
        }

    async def workers_node(state: RecommendationState) -> dict[str, Any]:
        outcomes = await run_worker_pool(client, config, state["request"], state["tasks"])
        return {"outcomes": outcomes, "phase": PipelinePhase.AGGREGATING}

    async def aggregator_node(state: RecommendationState) -> dict[str, Any]:
        result = aggregate_outcomes(state["outcomes"], state["request"])
        if result.fallback is not None:
            return {
                "successful": [],
                "final_recommendation": result.fallback.model_dump(by_alias=True),
                "used_fallback": True,
                "phase": PipelinePhase.FALLBACK_ONLY,
            }
        return {"successful": result.successful, "phase": PipelinePhase.SYNTHESIZING}

    async def synthesizer_node(state: RecommendationState) -> dict[str, Any]:
        try:
            final = await run_synthesis(client, config, state["request"], state["successful"])
        except SchemaViolation:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Synthesis unavailable, degrading to fallback: %r", exc)
            fallback = build_fallback_recommendation(state["request"])
            return {
                "final_recommendation": fallback.model_dump(by_alias=True),
                "used_fallback": True,
                "phase": PipelinePhase.VALIDATING_RESPONSE,
            }
        return {
            "final_recommendation": final,
            "used_fallback": False,
            "phase": PipelinePhase.VALIDATING_RESPONSE,
        }

    async def fallback_node(state: RecommendationState) -> dict[str, Any]:
        return {"phase": PipelinePhase.VALIDATING_RESPONSE}

    builder = StateGraph(RecommendationState)

    # -- Add nodes ------------------------------------------------------------
    builder.add_node("orchestrator", orchestrator_node)
    builder.add_node("workers", workers_node)
    builder.add_node("aggregator", aggregator_node)
    builder.add_node("synthesizer", synthesizer_node)
    builder.add_node("fallback", fallback_node)

    # -- Edges ----------------------------------------------------------------
    builder.add_edge(START, "orchestrator")
    builder.add_edge("orchestrator", "workers")
    builder.add_edge("workers", "aggregator")
    builder.add_conditional_edges(
        "aggregator",
        _route_after_aggregation,
        {"synthesizer": "synthesizer", "fallback": "fallback"},
    )
    builder.add_edge("synthesizer", END)
    builder.add_edge("fallback", END)

    return builder.compile()
