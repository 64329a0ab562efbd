"""Entry and exit gates of the recommendation pipeline.

``validate_request`` turns a raw request body into a ``DecisionRequest``
or rejects it whole.  ``validate_response`` checks the assembled response
before it leaves the pipeline; a failure there is always a defect in an
earlier stage and is never coerced into shape.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from recommendation.errors import SchemaViolation, Stage, ValidationError
from recommendation.schemas import DecisionRequest, PipelineResponse


def _error_details(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]) or "body",
            "message": error["msg"],
        }
        for error in exc.errors()
    ]


def validate_request(raw: Any) -> DecisionRequest:
    """Validate a raw request body.

    ``context`` must be a non-blank string; ``preferences`` and
    ``constraints`` must be lists of strings and default to empty lists.
    """
    if isinstance(raw, DecisionRequest):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(
            "Invalid request data",
            [{"field": "body", "message": "Request body must be a JSON object"}],
        )
    try:
        return DecisionRequest.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid request data", _error_details(exc)) from exc


def validate_response(payload: dict[str, Any]) -> PipelineResponse:
    """Validate the assembled response against the published shape."""
    try:
        return PipelineResponse.model_validate(payload)
    except PydanticValidationError as exc:
        raise SchemaViolation(
            "Assembled response failed validation",
            _error_details(exc),
            stage=Stage.SYNTHESIS,
        ) from exc
