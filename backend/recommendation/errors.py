"""Error taxonomy for the recommendation pipeline.

Every error raised inside the pipeline derives from ``PipelineError`` and
may carry the ``Stage`` it was raised in, so the HTTP layer can report
which phase failed without guessing.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class Stage(str, Enum):
    ORCHESTRATOR = "orchestrator"
    WORKERS = "workers"
    SYNTHESIS = "synthesis"
    UNKNOWN = "unknown"


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, *, stage: Stage | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage


class ValidationError(PipelineError):
    """The incoming decision request is malformed."""

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class UpstreamTimeoutError(PipelineError):
    """A phase or a single worker exceeded its time budget."""

    def __init__(self, message: str, *, timeout: float, stage: Stage | None = None) -> None:
        super().__init__(message, stage=stage)
        self.timeout = timeout


class UpstreamAPIError(PipelineError):
    """The completion provider returned an error or rate-limited the call."""

    def __init__(
        self, message: str, *, status: int | None = None, stage: Stage | None = None
    ) -> None:
        super().__init__(message, stage=stage)
        self.status = status


class ParseError(PipelineError):
    """The repair engine could not recover JSON from model output."""

    def __init__(self, message: str, *, snippet: str = "", stage: Stage | None = None) -> None:
        super().__init__(message, stage=stage)
        self.snippet = snippet


class SchemaViolation(PipelineError):
    """Parsed output does not have the shape the pipeline requires."""

    def __init__(
        self,
        message: str,
        details: list[dict[str, Any]] | None = None,
        *,
        stage: Stage | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.details = details or []


class ConfigurationError(PipelineError):
    """The service is missing a credential or has an invalid configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, stage=Stage.UNKNOWN)
