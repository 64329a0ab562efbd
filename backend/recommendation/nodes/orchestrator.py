"""Orchestrator node of the recommendation graph.

The orchestrator decomposes a decision request into one to three typed
subtasks plus a short analysis of the key issue.  It is the first node
executed in the graph, and its failure ends the run: without tasks there
is nothing to fan out.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from recommendation.completion import CompletionClient
from recommendation.errors import PipelineError, SchemaViolation, Stage
from recommendation.json_repair import repair_json
from recommendation.schemas import DecisionRequest, OrchestratorPlan, SubtaskSpec
from recommendation.settings import PipelineConfig
from recommendation.timeouts import with_timeout

logger = logging.getLogger(__name__)

MAX_TASKS = 3
DEFAULT_ANALYSIS = "Analysis of your decision context"

ORCHESTRATOR_PROMPT = """\
You are an expert decision strategist.

TASK: Break the problem below into 1-3 analytical subtasks.
- Subtasks must be independent so they can run in parallel.
- Use only these types: preference_analysis, constraint_validation, creative_solutions.
- Keep descriptions short: 1-2 sentences.

INPUT
  "context":     "{context}"
  "preferences": "{preferences}"
  "constraints": "{constraints}"

Output ONLY strict JSON, with no text outside the object:
{{
  "analysis": "<30-word synthesis of the key issue>",
  "tasks": [
    {{"type": "preference_analysis | constraint_validation | creative_solutions", "description": "..."}}
  ]
}}
"""


def build_orchestrator_prompt(request: DecisionRequest) -> str:
    return ORCHESTRATOR_PROMPT.format(
        context=request.context,
        preferences=" | ".join(request.preferences),
        constraints=" | ".join(request.constraints),
    )


def parse_plan(parsed: Any) -> OrchestratorPlan:
    """Turn repaired orchestrator JSON into a plan of at most three tasks.

    Tasks with an unknown type or missing description are discarded.  Any
    valid tasks beyond the third are dropped.  A plan left with no task
    raises ``SchemaViolation``.
    """
    if not isinstance(parsed, dict):
        raise SchemaViolation("Orchestrator output is not a JSON object", stage=Stage.ORCHESTRATOR)

    raw_tasks = parsed.get("tasks")
    if not isinstance(raw_tasks, list):
        raise SchemaViolation("Orchestrator output has no task list", stage=Stage.ORCHESTRATOR)

    tasks: list[SubtaskSpec] = []
    for raw_task in raw_tasks:
        try:
            tasks.append(SubtaskSpec.model_validate(raw_task))
        except PydanticValidationError:
            logger.warning("Discarding malformed orchestrator task: %r", raw_task)

    if not tasks:
        raise SchemaViolation("Orchestrator produced no usable tasks", stage=Stage.ORCHESTRATOR)
    if len(tasks) > MAX_TASKS:
        logger.info("Orchestrator returned %d tasks, keeping the first %d", len(tasks), MAX_TASKS)
        tasks = tasks[:MAX_TASKS]

    analysis = parsed.get("analysis")
    if not isinstance(analysis, str) or not analysis.strip():
        analysis = DEFAULT_ANALYSIS

    return OrchestratorPlan(analysis=analysis, tasks=tasks)


async def run_orchestrator(
    client: CompletionClient, config: PipelineConfig, request: DecisionRequest
) -> OrchestratorPlan:
    """Call the orchestrator model under its phase timeout and parse the plan."""
    start = time.monotonic()
    try:
        raw = await with_timeout(
            client.complete(
                model=config.orchestrator_model,
                prompt=build_orchestrator_prompt(request),
                temperature=config.orchestrator_temperature,
                max_tokens=config.orchestrator_max_tokens,
            ),
            config.orchestrator_timeout,
            stage=Stage.ORCHESTRATOR,
            label="Orchestrator",
        )
        plan = parse_plan(repair_json(raw))
    except PipelineError as exc:
        if exc.stage is None:
            exc.stage = Stage.ORCHESTRATOR
        logger.error("Orchestrator failed in %.2fs: %s", time.monotonic() - start, exc)
        raise

    logger.info(
        "Orchestrator produced %d task(s) in %.2fs: %s",
        len(plan.tasks),
        time.monotonic() - start,
        [task.kind.value for task in plan.tasks],
    )
    return plan
