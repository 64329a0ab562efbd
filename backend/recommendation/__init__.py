"""Decision recommendation pipeline built on LangGraph.

A decision request is decomposed by an orchestrator call into typed
subtasks, specialist workers handle the subtasks in parallel under strict
deadlines, and a synthesis call merges whatever succeeded into one final
recommendation.  Malformed or truncated model JSON is recovered by the
repair engine in ``recommendation.json_repair``.
"""

from __future__ import annotations

from .errors import (
    ConfigurationError,
    ParseError,
    PipelineError,
    SchemaViolation,
    Stage,
    UpstreamAPIError,
    UpstreamTimeoutError,
    ValidationError,
)
from .pipeline import RecommendationPipeline
from .schemas import (
    DecisionRequest,
    FinalRecommendation,
    PipelineResponse,
    Recommendation,
    SubtaskKind,
    SubtaskSpec,
    WorkerOutcome,
)
from .settings import PipelineConfig

__all__ = [
    "ConfigurationError",
    "ParseError",
    "PipelineError",
    "SchemaViolation",
    "Stage",
    "UpstreamAPIError",
    "UpstreamTimeoutError",
    "ValidationError",
    "RecommendationPipeline",
    "DecisionRequest",
    "FinalRecommendation",
    "PipelineResponse",
    "Recommendation",
    "SubtaskKind",
    "SubtaskSpec",
    "WorkerOutcome",
    "PipelineConfig",
]
