"""Pydantic schemas for the recommendation pipeline.

These models define the data exchanged between pipeline stages:
- The request validator produces a DecisionRequest
- The orchestrator emits an OrchestratorPlan of SubtaskSpec items
- Each worker produces a WorkerOutcome holding Recommendation items
- Synthesis (or the fallback) produces a FinalRecommendation
- The response validator gates the assembled PipelineResponse

Field names follow Python conventions; the camelCase wire names used by
the HTTP API are declared as aliases.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SubtaskKind(str, Enum):
    PREFERENCE_ANALYSIS = "preference_analysis"
    CONSTRAINT_VALIDATION = "constraint_validation"
    CREATIVE_SOLUTIONS = "creative_solutions"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DecisionRequest(BaseModel):
    """A validated decision request; immutable for the whole run."""

    model_config = ConfigDict(frozen=True)

    context: str = Field(min_length=1)
    preferences: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)

    @field_validator("context")
    @classmethod
    def _context_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("context must not be blank")
        return value

    @field_validator("preferences", "constraints", mode="before")
    @classmethod
    def _absent_means_empty(cls, value):
        return [] if value is None else value


class SubtaskSpec(_WireModel):
    """One analytical subtask produced by the orchestrator."""

    kind: SubtaskKind = Field(alias="type")
    description: str


class OrchestratorPlan(BaseModel):
    analysis: str
    tasks: list[SubtaskSpec] = Field(min_length=1, max_length=3)


class Recommendation(_WireModel):
    """A single option proposed by a worker."""

    id: str
    title: str
    description: str
    pros: list[str]
    cons: list[str]
    action_plan: list[str] | None = Field(default=None, alias="actionPlan")
    timeframe: str | None = None
    tags: list[str] = Field(default_factory=list)


class WorkerOutput(BaseModel):
    recommendations: list[Recommendation]


class WorkerOutcome(_WireModel):
    """Result of one worker: either recommendations or an error, never both."""

    kind: SubtaskKind = Field(alias="type")
    recommendations: list[Recommendation] | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _exactly_one_populated(self) -> "WorkerOutcome":
        if (self.recommendations is None) == (self.error is None):
            raise ValueError("exactly one of recommendations or error must be set")
        return self

    @property
    def succeeded(self) -> bool:
        return self.recommendations is not None


class FinalRecommendation(_WireModel):
    """The synthesised (or fallback) answer returned to the user."""

    summary: str = Field(min_length=1)
    reasoning: str
    key_points: list[str] = Field(alias="keyPoints", min_length=1)
    next_steps: list[str] | None = Field(default=None, alias="nextSteps")
    resources: list[str] | None = None


class WorkerStatus(_WireModel):
    kind: SubtaskKind = Field(alias="type")
    success: bool
    error: str | None = None


class AnalysisSummary(_WireModel):
    analysis: str
    tasks: list[SubtaskSpec]
    worker_status: list[WorkerStatus] = Field(alias="workerStatus")


class PipelineResponse(_WireModel):
    """Complete response body for ``POST /recommendations``."""

    analysis: AnalysisSummary
    final_recommendation: FinalRecommendation = Field(alias="finalRecommendation")
