"""Worker pool node of the recommendation graph.

Every subtask from the orchestrator gets one specialist completion call.
All calls are launched together; each has its own deadline, and the pool
as a whole is bounded by an outer deadline.  A worker's failure (timeout,
provider error, unparsable or malformed output) is captured as a failed
``WorkerOutcome`` and never touches its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from recommendation.completion import CompletionClient
from recommendation.errors import SchemaViolation, Stage
from recommendation.json_repair import repair_json
from recommendation.schemas import DecisionRequest, Recommendation, SubtaskSpec, WorkerOutcome, WorkerOutput
from recommendation.settings import PipelineConfig
from recommendation.timeouts import with_timeout

logger = logging.getLogger(__name__)

CANCEL_GRACE_SECONDS = 0.5

WORKER_PROMPT = """\
You are an elite specialist asked to perform: {kind}.

CONTEXT:      {context}
PREFERENCES:  {preferences}
CONSTRAINTS:  {constraints}
SUBTASK:      {description}

DELIVERABLE
Return 3-5 diverse recommendations.  For each:
- Give a compelling title and a 40-word description.
- Provide an actionPlan: 3-6 numbered steps the user can follow immediately.
- Assign a realistic timeframe (e.g. "3-4 weeks").
- Provide key pros and cons.
- Optional tags (max 3) to hint at scenario or persona.

Output ONLY strict JSON matching this schema:
{{
  "recommendations": [
    {{
      "id": "snake_case_id",
      "title": "...",
      "description": "...",
      "actionPlan": ["Step 1 ...", "Step 2 ..."],
      "timeframe": "...",
      "pros": ["..."],
      "cons": ["..."],
      "tags": ["..."]
    }}
  ]
}}
"""


def build_worker_prompt(request: DecisionRequest, subtask: SubtaskSpec) -> str:
    return WORKER_PROMPT.format(
        kind=subtask.kind.value.upper(),
        context=request.context,
        preferences=" | ".join(request.preferences) or "-",
        constraints=" | ".join(request.constraints) or "-",
        description=subtask.description,
    )


def parse_worker_output(parsed: Any) -> list[Recommendation]:
    """Validate repaired worker JSON; raise when it holds no recommendation."""
    try:
        output = WorkerOutput.model_validate(parsed)
    except PydanticValidationError as exc:
        raise SchemaViolation(
            "Worker output does not match the recommendations schema",
            [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()],
            stage=Stage.WORKERS,
        ) from exc
    if not output.recommendations:
        raise SchemaViolation("Worker returned no complete recommendations", stage=Stage.WORKERS)
    return output.recommendations


async def run_worker(
    client: CompletionClient,
    config: PipelineConfig,
    request: DecisionRequest,
    subtask: SubtaskSpec,
) -> list[Recommendation]:
    """Run one specialist call under the per-worker timeout."""
    raw = await with_timeout(
        client.complete(
            model=config.worker_model,
            prompt=build_worker_prompt(request, subtask),
            temperature=config.worker_temperature,
            max_tokens=config.worker_max_tokens,
        ),
        config.worker_timeout,
        stage=Stage.WORKERS,
        label=f"Worker {subtask.kind.value}",
    )
    return parse_worker_output(repair_json(raw))


async def _run_isolated(
    client: CompletionClient,
    config: PipelineConfig,
    request: DecisionRequest,
    subtask: SubtaskSpec,
) -> WorkerOutcome:
    start = time.monotonic()
    try:
        recommendations = await run_worker(client, config, request, subtask)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Worker %s failed in %.2fs: %s",
            subtask.kind.value,
            time.monotonic() - start,
            exc,
        )
        return WorkerOutcome(kind=subtask.kind, error=str(exc) or type(exc).__name__)

    logger.info(
        "Worker %s returned %d recommendation(s) in %.2fs",
        subtask.kind.value,
        len(recommendations),
        time.monotonic() - start,
    )
    return WorkerOutcome(kind=subtask.kind, recommendations=recommendations)


async def run_worker_pool(
    client: CompletionClient,
    config: PipelineConfig,
    request: DecisionRequest,
    tasks: list[SubtaskSpec],
) -> list[WorkerOutcome]:
    """Run all workers concurrently and return outcomes in task order.

    Workers still pending when ``worker_pool_timeout`` expires are
    cancelled and recorded as failed.  After the deadline the pool waits at
    most ``CANCEL_GRACE_SECONDS`` more for the cancellations to land.
    """
    if not tasks:
        return []

    logger.info("Fan-out %d worker(s): %s", len(tasks), [task.kind.value for task in tasks])
    jobs = [
        asyncio.create_task(_run_isolated(client, config, request, task))
        for task in tasks
    ]
    done, pending = await asyncio.wait(jobs, timeout=config.worker_pool_timeout)

    if pending:
        logger.warning(
            "Worker pool timed out after %gs with %d worker(s) pending",
            config.worker_pool_timeout,
            len(pending),
        )
        for job in pending:
            job.cancel()
        # Let the cancellations land; a call that ignores cancellation is abandoned.
        await asyncio.wait(pending, timeout=CANCEL_GRACE_SECONDS)

    outcomes: list[WorkerOutcome] = []
    for task, job in zip(tasks, jobs):
        if job in done:
            outcomes.append(job.result())
        else:
            outcomes.append(
                WorkerOutcome(
                    kind=task.kind,
                    error=f"Worker pool timed out after {config.worker_pool_timeout:g}s",
                )
            )
    return outcomes
