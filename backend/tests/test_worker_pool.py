"""Tests for the worker pool node: prompts, parsing and bulkhead isolation."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from recommendation.errors import SchemaViolation, Stage
from recommendation.nodes.worker_pool import (
    WORKER_PROMPT,
    build_worker_prompt,
    parse_worker_output,
    run_worker_pool,
)
from recommendation.schemas import DecisionRequest, SubtaskKind, SubtaskSpec


REQUEST = DecisionRequest(context="Should I take a new job?", preferences=["growth"])

TASKS = [
    SubtaskSpec(kind=SubtaskKind.PREFERENCE_ANALYSIS, description="Weigh growth"),
    SubtaskSpec(kind=SubtaskKind.CONSTRAINT_VALIDATION, description="Check the budget"),
    SubtaskSpec(kind=SubtaskKind.CREATIVE_SOLUTIONS, description="Find a third way"),
]


def _worker_json(rec_id: str) -> str:
    return json.dumps(
        {
            "recommendations": [
                {
                    "id": rec_id,
                    "title": f"Option {rec_id}",
                    "description": "Something sensible",
                    "pros": ["good"],
                    "cons": ["bad"],
                }
            ]
        }
    )


def _make_client(behaviour: dict[str, Any]) -> MagicMock:
    """Return a client whose reply depends on the subtask named in the prompt.

    Values in *behaviour* are either a reply string, an exception to raise,
    or a number of seconds to hang for.
    """

    async def complete(*, prompt: str, **kwargs: Any) -> str:
        for marker, action in behaviour.items():
            if marker in prompt:
                if isinstance(action, Exception):
                    raise action
                if isinstance(action, (int, float)):
                    await asyncio.sleep(action)
                    return _worker_json("late")
                return action
        raise AssertionError(f"unexpected prompt: {prompt[:80]}")

    client = MagicMock()
    client.complete = AsyncMock(side_effect=complete)
    return client


# ---------------------------------------------------------------------------
# Prompt and parsing
# ---------------------------------------------------------------------------


class TestWorkerPrompt:
    def test_contains_json_keyword(self):
        assert "JSON" in WORKER_PROMPT

    def test_names_kind_and_description(self):
        prompt = build_worker_prompt(REQUEST, TASKS[1])
        assert "CONSTRAINT_VALIDATION" in prompt
        assert "Check the budget" in prompt
        assert "Should I take a new job?" in prompt

    def test_empty_lists_render_as_dash(self):
        prompt = build_worker_prompt(REQUEST, TASKS[0])
        assert "CONSTRAINTS:  -" in prompt


class TestParseWorkerOutput:
    def test_valid_output(self):
        recs = parse_worker_output(json.loads(_worker_json("a")))
        assert [r.id for r in recs] == ["a"]

    def test_empty_recommendations_is_a_failure(self):
        with pytest.raises(SchemaViolation) as exc_info:
            parse_worker_output({"recommendations": []})
        assert exc_info.value.stage is Stage.WORKERS

    def test_wrong_shape_is_a_failure(self):
        with pytest.raises(SchemaViolation) as exc_info:
            parse_worker_output({"recommendations": [{"id": "a"}]})
        assert exc_info.value.details


# ---------------------------------------------------------------------------
# run_worker_pool
# ---------------------------------------------------------------------------


class TestRunWorkerPool:
    @pytest.mark.asyncio
    async def test_all_succeed_in_task_order(self, fast_config):
        client = _make_client(
            {
                "Weigh growth": _worker_json("pref"),
                "Check the budget": _worker_json("cons"),
                "Find a third way": _worker_json("crea"),
            }
        )
        outcomes = await run_worker_pool(client, fast_config, REQUEST, TASKS)

        assert [o.kind for o in outcomes] == [t.kind for t in TASKS]
        assert all(o.succeeded for o in outcomes)
        assert [o.recommendations[0].id for o in outcomes] == ["pref", "cons", "crea"]

    @pytest.mark.asyncio
    async def test_runs_workers_concurrently(self, fast_config):
        # Every worker waits until all of them have started, which only
        # happens when they run at the same time.
        started = 0
        all_started = asyncio.Event()

        async def complete(**kwargs: Any) -> str:
            nonlocal started
            started += 1
            if started == len(TASKS):
                all_started.set()
            await all_started.wait()
            return _worker_json("x")

        client = MagicMock()
        client.complete = AsyncMock(side_effect=complete)
        outcomes = await run_worker_pool(client, fast_config, REQUEST, TASKS)
        assert all(o.succeeded for o in outcomes)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_siblings(self, fast_config):
        client = _make_client(
            {
                "Weigh growth": _worker_json("pref"),
                "Check the budget": RuntimeError("provider exploded"),
                "Find a third way": _worker_json("crea"),
            }
        )
        outcomes = await run_worker_pool(client, fast_config, REQUEST, TASKS)

        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert outcomes[1].error == "provider exploded"
        assert outcomes[0].recommendations[0].id == "pref"
        assert outcomes[2].recommendations[0].id == "crea"

    @pytest.mark.asyncio
    async def test_slow_worker_times_out_individually(self, fast_config):
        client = _make_client(
            {
                "Weigh growth": _worker_json("pref"),
                "Check the budget": 5,
                "Find a third way": _worker_json("crea"),
            }
        )
        outcomes = await run_worker_pool(client, fast_config, REQUEST, TASKS)

        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert "timed out" in outcomes[1].error

    @pytest.mark.asyncio
    async def test_unparsable_and_empty_outputs_fail(self, fast_config):
        client = _make_client(
            {
                "Weigh growth": "Sorry, no can do.",
                "Check the budget": '{"recommendations": []}',
                "Find a third way": _worker_json("crea"),
            }
        )
        outcomes = await run_worker_pool(client, fast_config, REQUEST, TASKS)
        assert [o.succeeded for o in outcomes] == [False, False, True]

    @pytest.mark.asyncio
    async def test_pool_deadline_bounds_the_wait(self, fast_config, monkeypatch):
        cancelled: list[bool] = []

        async def hang(*args: Any, **kwargs: Any):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        # Bypass the per-worker deadline so only the pool deadline applies.
        monkeypatch.setattr("recommendation.nodes.worker_pool.run_worker", hang)

        loop = asyncio.get_running_loop()
        started = loop.time()
        outcomes = await run_worker_pool(MagicMock(), fast_config, REQUEST, TASKS)
        elapsed = loop.time() - started

        assert elapsed < fast_config.worker_pool_timeout + 0.5
        assert not any(o.succeeded for o in outcomes)
        assert all("Worker pool timed out" in o.error for o in outcomes)
        assert len(cancelled) == len(TASKS)

    @pytest.mark.asyncio
    async def test_no_tasks_returns_empty(self, fast_config):
        client = _make_client({})
        assert await run_worker_pool(client, fast_config, REQUEST, []) == []
        client.complete.assert_not_called()
