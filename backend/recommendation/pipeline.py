"""Entry point of the recommendation pipeline.

``RecommendationPipeline.run`` is the only operation the HTTP layer
calls: validate the request, run the graph, then gate the assembled
response through ``validate_response``.
"""

from __future__ import annotations

import logging
from typing import Any

from recommendation.completion import CompletionClient, OpenAICompletionClient
from recommendation.errors import PipelineError
from recommendation.graph import build_recommendation_graph
from recommendation.schemas import PipelineResponse, WorkerOutcome
from recommendation.settings import PipelineConfig
from recommendation.state import PipelinePhase
from recommendation.timeouts import Stopwatch
from recommendation.validation import validate_request, validate_response

logger = logging.getLogger(__name__)


def _worker_status(outcome: WorkerOutcome) -> dict[str, Any]:
    return {"type": outcome.kind.value, "success": outcome.succeeded, "error": outcome.error}


class RecommendationPipeline:
    """Orchestrator -> parallel workers -> synthesis, under phase budgets."""

    def __init__(self, config: PipelineConfig, client: CompletionClient | None = None) -> None:
        self.config = config
        self.client = client if client is not None else OpenAICompletionClient(config.api_key)
        self._graph = build_recommendation_graph(self.client, config)

    async def run(self, raw_request: Any) -> PipelineResponse:
        stopwatch = Stopwatch()
        request = validate_request(raw_request)
        logger.info(
            "Recommendation run started (%d preference(s), %d constraint(s))",
            len(request.preferences),
            len(request.constraints),
        )

        try:
            state = await self._graph.ainvoke(
                {"request": request, "phase": PipelinePhase.ORCHESTRATING}
            )
        except PipelineError as exc:
            logger.warning(
                "Recommendation run %s at stage %s after %.2fs",
                PipelinePhase.FAILED.value,
                exc.stage.value if exc.stage else "unknown",
                stopwatch.elapsed,
            )
            raise

        payload = {
            "analysis": {
                "analysis": state["analysis"],
                "tasks": [task.model_dump(by_alias=True) for task in state["tasks"]],
                "workerStatus": [_worker_status(outcome) for outcome in state["outcomes"]],
            },
            "finalRecommendation": state["final_recommendation"],
        }
        response = validate_response(payload)

        logger.info(
            "Recommendation run %s in %.2fs (fallback=%s)",
            PipelinePhase.DONE.value,
            stopwatch.elapsed,
            state.get("used_fallback", False),
        )
        return response
