"""FastAPI application exposing the /recommendations and /chat endpoints."""
import json
import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from chat import ChatRequest, stream_chat
from config import load_pipeline_config
from recommendation import (
    ConfigurationError,
    PipelineError,
    RecommendationPipeline,
    Stage,
    UpstreamTimeoutError,
    ValidationError,
)
from recommendation.timeouts import Stopwatch, attribute_stage

app = FastAPI(title="Decision Recommendation Service")

logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class VoteRequest(BaseModel):
    score: float = Field(ge=-1, le=1)


class VoteResponse(BaseModel):
    success: bool


class PhaseBudgetsResponse(BaseModel):
    orchestrator: float
    workers: float
    synthesis: float
    total: float


@lru_cache(maxsize=None)
def get_pipeline() -> RecommendationPipeline:
    """Build the process-wide pipeline on first use."""
    try:
        config = load_pipeline_config()
    except RuntimeError as exc:
        raise ConfigurationError(str(exc)) from exc
    return RecommendationPipeline(config)


@app.exception_handler(ConfigurationError)
async def handle_configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Service misconfigured: %s", exc)
    return JSONResponse({"error": exc.message, "stage": Stage.UNKNOWN.value}, status_code=500)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse({"error": "Invalid request data", "details": details}, status_code=400)


def _error_response(exc: Exception, stage: Stage) -> JSONResponse:
    status_code = 504 if isinstance(exc, UpstreamTimeoutError) else 500
    message = getattr(exc, "message", None) or str(exc) or "Internal error"
    return JSONResponse({"error": message, "stage": stage.value}, status_code=status_code)


@app.post("/recommendations")
async def create_recommendations(
    request: Request, pipeline: RecommendationPipeline = Depends(get_pipeline)
) -> JSONResponse:
    stopwatch = Stopwatch()
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            {
                "error": "Invalid request data",
                "details": [{"field": "body", "message": "Request body must be valid JSON"}],
            },
            status_code=400,
        )

    try:
        response = await pipeline.run(body)
    except ValidationError as exc:
        return JSONResponse({"error": exc.message, "details": exc.details}, status_code=400)
    except PipelineError as exc:
        stage = exc.stage or attribute_stage(stopwatch.elapsed, pipeline.config)
        logger.error("Recommendation pipeline failed at stage %s: %s", stage.value, exc)
        return _error_response(exc, stage)
    except Exception as exc:
        stage = attribute_stage(stopwatch.elapsed, pipeline.config)
        logger.exception("Unexpected recommendation failure after %.2fs", stopwatch.elapsed)
        return _error_response(exc, stage)

    return JSONResponse(response.model_dump(by_alias=True, mode="json"))


@app.get("/recommendations/budgets", response_model=PhaseBudgetsResponse)
async def get_phase_budgets(
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> PhaseBudgetsResponse:
    """Return the cumulative phase thresholds (seconds) used for stage attribution."""
    thresholds = pipeline.config.phase_thresholds()
    return PhaseBudgetsResponse(**thresholds, total=pipeline.config.total_request_budget)


@app.post("/recommendations/{recommendation_id}/vote", response_model=VoteResponse)
async def vote_on_recommendation(recommendation_id: str, vote: VoteRequest) -> VoteResponse:
    # Votes are not persisted.
    logger.info("Received vote for recommendation %s: %s", recommendation_id, vote.score)
    return VoteResponse(success=True)


@app.post("/chat")
async def chat(req: ChatRequest, pipeline: RecommendationPipeline = Depends(get_pipeline)):
    """Streaming endpoint for free-form follow-up conversation."""
    return StreamingResponse(
        stream_chat(req, pipeline.client, pipeline.config),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
