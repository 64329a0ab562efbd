"""Deadline helpers shared by every pipeline phase.

``with_timeout`` races an awaitable against a timer.  When the timer
wins, the awaitable is cancelled (which aborts the in-flight HTTP request
for cancellation-aware clients) and its eventual result, if any, is never
observed.  Treat a timed-out call as "outcome unknown": the provider may
still have executed and billed it.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, TypeVar

from recommendation.errors import Stage, UpstreamTimeoutError
from recommendation.settings import PipelineConfig

T = TypeVar("T")


async def with_timeout(
    operation: Awaitable[T],
    seconds: float,
    *,
    stage: Stage | None = None,
    label: str = "Operation",
) -> T:
    """Await *operation*, raising ``UpstreamTimeoutError`` after *seconds*."""
    try:
        return await asyncio.wait_for(operation, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeoutError(
            f"{label} timed out after {seconds:g}s", timeout=seconds, stage=stage
        ) from exc


def attribute_stage(elapsed: float, config: PipelineConfig) -> Stage:
    """Map elapsed request time to the phase that was most likely running.

    Compares *elapsed* (seconds) with the cumulative phase thresholds
    published by *config*.
    """
    thresholds = config.phase_thresholds()
    if elapsed <= thresholds["orchestrator"]:
        return Stage.ORCHESTRATOR
    if elapsed <= thresholds["workers"]:
        return Stage.WORKERS
    if elapsed <= thresholds["synthesis"]:
        return Stage.SYNTHESIS
    return Stage.UNKNOWN


class Stopwatch:
    """Monotonic elapsed-time counter started at construction."""

    def __init__(self) -> None:
        self._started = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started
