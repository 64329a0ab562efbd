"""Aggregator node of the recommendation graph.

Filters worker outcomes down to the successful ones.  When none succeeded
the aggregator emits a fixed, pipeline-authored recommendation instead of
calling the model again, so the caller still gets a usable answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from recommendation.schemas import DecisionRequest, FinalRecommendation, WorkerOutcome

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Here are thoughtful recommendations based on your decision context."

FALLBACK_KEY_POINTS = [
    "Start with small, reversible steps to test your assumptions",
    "Gather feedback early and often from stakeholders",
    "Document your decision-making process for future reference",
    "Build in checkpoints to reassess and adjust as needed",
]

FALLBACK_NEXT_STEPS = [
    "Define clear success metrics for your decision",
    "Create a timeline with specific milestones",
    "Identify key stakeholders and communicate your plan",
    "Set up a review process for 30, 60, and 90 days out",
]

FALLBACK_RESOURCES = [
    "The Decision Book: 50 Models for Strategic Thinking",
    "Good Strategy Bad Strategy by Richard Rumelt",
    "Thinking in Bets by Annie Duke",
]

_CONTEXT_EXCERPT = 100


def build_fallback_recommendation(request: DecisionRequest) -> FinalRecommendation:
    """Return the deterministic recommendation used when no model output is usable."""
    excerpt = request.context[:_CONTEXT_EXCERPT]
    if len(request.context) > _CONTEXT_EXCERPT:
        excerpt += "..."
    return FinalRecommendation(
        summary=FALLBACK_SUMMARY,
        reasoning=(
            f'Given your context "{excerpt}", I recommend focusing on a balanced '
            "approach that considers both immediate needs and long-term goals. "
            "This path offers flexibility while maintaining alignment with your "
            "stated preferences and constraints."
        ),
        key_points=list(FALLBACK_KEY_POINTS),
        next_steps=list(FALLBACK_NEXT_STEPS),
        resources=list(FALLBACK_RESOURCES),
    )


@dataclass(frozen=True)
class AggregationResult:
    """Either the successful outcomes to synthesise, or the fallback."""

    successful: list[WorkerOutcome]
    fallback: FinalRecommendation | None = None


def aggregate_outcomes(
    outcomes: list[WorkerOutcome], request: DecisionRequest
) -> AggregationResult:
    successful = [outcome for outcome in outcomes if outcome.succeeded]
    if successful:
        logger.info("%d of %d worker(s) succeeded", len(successful), len(outcomes))
        return AggregationResult(successful=successful)

    logger.warning("All %d worker(s) failed, providing fallback guidance", len(outcomes))
    return AggregationResult(successful=[], fallback=build_fallback_recommendation(request))
