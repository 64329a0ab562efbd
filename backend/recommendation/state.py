"""LangGraph state definition for the recommendation pipeline.

RecommendationState is a TypedDict consumed by every graph node.  Each
node writes only the keys it produces; no key is written by more than
one node, so no reducers are needed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, TypedDict

from recommendation.schemas import DecisionRequest, SubtaskSpec, WorkerOutcome


class PipelinePhase(str, Enum):
    VALIDATING = "validating"
    ORCHESTRATING = "orchestrating"
    FANNING_OUT = "fanning_out"
    AGGREGATING = "aggregating"
    SYNTHESIZING = "synthesizing"
    FALLBACK_ONLY = "fallback_only"
    VALIDATING_RESPONSE = "validating_response"
    DONE = "done"
    FAILED = "failed"


class RecommendationState(TypedDict, total=False):
    """Shared state passed through every node of the recommendation graph."""

    # Validated input
    request: DecisionRequest

    # Orchestrator outputs
    analysis: str
    tasks: list[SubtaskSpec]

    # Worker pool output, one outcome per task in task order
    outcomes: list[WorkerOutcome]

    # Aggregator output
    successful: list[WorkerOutcome]

    # Final output, as parsed JSON so the response gate sees it unmodified
    final_recommendation: Any
    used_fallback: bool

    # Phase tracking
    phase: PipelinePhase
