"""Tests for partial-failure aggregation and the deterministic fallback."""

from __future__ import annotations

from recommendation.nodes.aggregator import (
    FALLBACK_KEY_POINTS,
    FALLBACK_SUMMARY,
    aggregate_outcomes,
    build_fallback_recommendation,
)
from recommendation.schemas import DecisionRequest, Recommendation, SubtaskKind, WorkerOutcome


REQUEST = DecisionRequest(context="Should I take a new job?")


def _success(kind: SubtaskKind) -> WorkerOutcome:
    rec = Recommendation(id="a", title="A", description="d", pros=["p"], cons=["c"])
    return WorkerOutcome(kind=kind, recommendations=[rec])


def _failure(kind: SubtaskKind) -> WorkerOutcome:
    return WorkerOutcome(kind=kind, error="timed out")


class TestAggregateOutcomes:
    def test_keeps_only_successes(self):
        outcomes = [
            _success(SubtaskKind.PREFERENCE_ANALYSIS),
            _failure(SubtaskKind.CONSTRAINT_VALIDATION),
            _success(SubtaskKind.CREATIVE_SOLUTIONS),
        ]
        result = aggregate_outcomes(outcomes, REQUEST)
        assert result.fallback is None
        assert [o.kind for o in result.successful] == [
            SubtaskKind.PREFERENCE_ANALYSIS,
            SubtaskKind.CREATIVE_SOLUTIONS,
        ]

    def test_successes_pass_through_unchanged(self):
        outcome = _success(SubtaskKind.PREFERENCE_ANALYSIS)
        assert aggregate_outcomes([outcome], REQUEST).successful[0] is outcome

    def test_all_failed_yields_fallback(self):
        outcomes = [_failure(kind) for kind in SubtaskKind]
        result = aggregate_outcomes(outcomes, REQUEST)
        assert result.successful == []
        assert result.fallback is not None
        assert result.fallback.summary == FALLBACK_SUMMARY
        assert result.fallback.key_points == FALLBACK_KEY_POINTS

    def test_no_outcomes_yields_fallback(self):
        assert aggregate_outcomes([], REQUEST).fallback is not None


class TestFallbackRecommendation:
    def test_quotes_short_context_verbatim(self):
        fallback = build_fallback_recommendation(REQUEST)
        assert '"Should I take a new job?"' in fallback.reasoning

    def test_truncates_long_context(self):
        request = DecisionRequest(context="x" * 150)
        fallback = build_fallback_recommendation(request)
        assert '"' + "x" * 100 + '..."' in fallback.reasoning

    def test_is_deterministic_and_complete(self):
        first = build_fallback_recommendation(REQUEST)
        second = build_fallback_recommendation(REQUEST)
        assert first == second
        assert first.key_points and first.next_steps and first.resources

    def test_constants_are_not_shared(self):
        fallback = build_fallback_recommendation(REQUEST)
        fallback.key_points.append("mutated")
        assert "mutated" not in FALLBACK_KEY_POINTS
