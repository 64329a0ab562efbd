"""Tests for the synthesis node."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from recommendation.errors import ParseError, Stage, UpstreamTimeoutError
from recommendation.nodes.synthesizer import (
    SYNTHESIS_PROMPT,
    build_synthesis_prompt,
    run_synthesis,
    serialize_worker_outputs,
)
from recommendation.schemas import DecisionRequest, Recommendation, SubtaskKind, WorkerOutcome


REQUEST = DecisionRequest(context="Should I take a new job?")

SUCCESSFUL = [
    WorkerOutcome(
        kind=SubtaskKind.CREATIVE_SOLUTIONS,
        recommendations=[
            Recommendation(
                id="side_project",
                title="Start a side project",
                description="Test the new field first",
                pros=["low risk"],
                cons=["slow"],
                action_plan=["Pick a project"],
            )
        ],
    )
]

FAKE_SYNTHESIS = {
    "summary": "Try before you leap",
    "reasoning": "A side project tests the water",
    "keyPoints": ["Low risk"],
    "nextSteps": ["Pick a project"],
}


def _make_client(response: str) -> MagicMock:
    client = MagicMock()
    client.complete = AsyncMock(return_value=response)
    return client


class TestSynthesisPrompt:
    def test_names_output_fields(self):
        for name in ("summary", "reasoning", "keyPoints", "nextSteps", "resources"):
            assert name in SYNTHESIS_PROMPT

    def test_serializes_with_wire_names(self):
        serialized = serialize_worker_outputs(SUCCESSFUL)
        assert serialized == [
            {
                "type": "creative_solutions",
                "recommendations": [
                    {
                        "id": "side_project",
                        "title": "Start a side project",
                        "description": "Test the new field first",
                        "pros": ["low risk"],
                        "cons": ["slow"],
                        "actionPlan": ["Pick a project"],
                        "tags": [],
                    }
                ],
            }
        ]

    def test_prompt_embeds_context_and_outputs(self):
        prompt = build_synthesis_prompt(REQUEST, SUCCESSFUL)
        assert "Should I take a new job?" in prompt
        assert '"side_project"' in prompt


class TestRunSynthesis:
    @pytest.mark.asyncio
    async def test_returns_parsed_json(self, fast_config):
        client = _make_client(json.dumps(FAKE_SYNTHESIS))
        assert await run_synthesis(client, fast_config, REQUEST, SUCCESSFUL) == FAKE_SYNTHESIS

    @pytest.mark.asyncio
    async def test_uses_largest_token_budget(self, fast_config):
        client = _make_client(json.dumps(FAKE_SYNTHESIS))
        await run_synthesis(client, fast_config, REQUEST, SUCCESSFUL)
        kwargs = client.complete.call_args.kwargs
        assert kwargs["max_tokens"] == fast_config.synthesis_max_tokens
        assert kwargs["max_tokens"] > fast_config.worker_max_tokens

    @pytest.mark.asyncio
    async def test_repairs_truncated_output(self, fast_config):
        text = json.dumps(FAKE_SYNTHESIS)
        truncated = text[: text.index('"nextSteps"')]
        result = await run_synthesis(_make_client(truncated), fast_config, REQUEST, SUCCESSFUL)
        assert result == {k: FAKE_SYNTHESIS[k] for k in ("summary", "reasoning", "keyPoints")}

    @pytest.mark.asyncio
    async def test_timeout_carries_synthesis_stage(self, fast_config):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = MagicMock()
        client.complete = AsyncMock(side_effect=slow)
        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await run_synthesis(client, fast_config, REQUEST, SUCCESSFUL)
        assert exc_info.value.stage is Stage.SYNTHESIS

    @pytest.mark.asyncio
    async def test_parse_error_carries_synthesis_stage(self, fast_config):
        with pytest.raises(ParseError) as exc_info:
            await run_synthesis(_make_client("nope"), fast_config, REQUEST, SUCCESSFUL)
        assert exc_info.value.stage is Stage.SYNTHESIS
