"""Synthesizer node of the recommendation graph.

Merges the successful worker outputs into one final recommendation.  The
synthesis call gets the largest token budget of the three stages since
its output is the longest.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from recommendation.completion import CompletionClient
from recommendation.errors import PipelineError, Stage
from recommendation.json_repair import repair_json
from recommendation.schemas import DecisionRequest, WorkerOutcome
from recommendation.settings import PipelineConfig
from recommendation.timeouts import with_timeout

logger = logging.getLogger(__name__)

SYNTHESIS_PROMPT = """\
You are the Chief Decision Architect synthesising specialist reports.

GOAL
Present ONE consolidated recommendation package.

CONTEXT: {context}

WORKER OUTPUTS:
{worker_outputs}

INSTRUCTIONS
- Merge overlapping ideas; discard weak ones.
- Produce: summary, reasoning, 4-6 keyPoints.
- Add nextSteps: a punch-list of what the user should do in the coming week.
- Suggest high-quality resources (books, tools, services; at most 5).

Output ONLY strict JSON matching this schema:
{{
  "summary":   "<at most 60 words>",
  "reasoning": "<100-140 words explaining why this path excels>",
  "keyPoints": ["..."],
  "nextSteps": ["..."],
  "resources": ["..."]
}}
"""


def serialize_worker_outputs(successful: list[WorkerOutcome]) -> list[dict[str, Any]]:
    return [
        {
            "type": outcome.kind.value,
            "recommendations": [
                rec.model_dump(by_alias=True, exclude_none=True)
                for rec in outcome.recommendations or []
            ],
        }
        for outcome in successful
    ]


def build_synthesis_prompt(request: DecisionRequest, successful: list[WorkerOutcome]) -> str:
    return SYNTHESIS_PROMPT.format(
        context=request.context,
        worker_outputs=json.dumps(serialize_worker_outputs(successful), indent=2),
    )


async def run_synthesis(
    client: CompletionClient,
    config: PipelineConfig,
    request: DecisionRequest,
    successful: list[WorkerOutcome],
) -> Any:
    """Call the synthesis model under its phase timeout; return repaired JSON."""
    start = time.monotonic()
    try:
        raw = await with_timeout(
            client.complete(
                model=config.synthesis_model,
                prompt=build_synthesis_prompt(request, successful),
                temperature=config.synthesis_temperature,
                max_tokens=config.synthesis_max_tokens,
            ),
            config.synthesis_timeout,
            stage=Stage.SYNTHESIS,
            label="Synthesis",
        )
        parsed = repair_json(raw)
    except PipelineError as exc:
        if exc.stage is None:
            exc.stage = Stage.SYNTHESIS
        logger.error("Synthesis failed in %.2fs: %s", time.monotonic() - start, exc)
        raise

    logger.info("Synthesis finished in %.2fs", time.monotonic() - start)
    return parsed
