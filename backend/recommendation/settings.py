"""Immutable runtime configuration for the recommendation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_MODEL = "gpt-4o"


@dataclass(frozen=True)
class PipelineConfig:
    """All models, token budgets, temperatures and phase timeouts.

    Timeouts are in seconds and must nest: a single worker always finishes
    (or is abandoned) before the worker pool gives up, and the three phase
    budgets together fit inside ``total_request_budget``.
    """

    api_key: str = field(repr=False)

    orchestrator_model: str = DEFAULT_MODEL
    worker_model: str = DEFAULT_MODEL
    synthesis_model: str = DEFAULT_MODEL
    chat_model: str = DEFAULT_MODEL

    orchestrator_max_tokens: int = 2048
    worker_max_tokens: int = 2048
    synthesis_max_tokens: int = 3072
    chat_max_tokens: int = 400

    orchestrator_temperature: float = 0.6
    worker_temperature: float = 0.8
    synthesis_temperature: float = 0.5
    chat_temperature: float = 0.7

    orchestrator_timeout: float = 12.0
    worker_timeout: float = 20.0
    worker_pool_timeout: float = 25.0
    synthesis_timeout: float = 20.0
    total_request_budget: float = 60.0

    chat_history_window: int = 3

    def __post_init__(self) -> None:
        if not self.api_key or not self.api_key.strip():
            raise ValueError("api_key must be a non-empty string")

        for name in (
            "orchestrator_max_tokens",
            "worker_max_tokens",
            "synthesis_max_tokens",
            "chat_max_tokens",
            "orchestrator_timeout",
            "worker_timeout",
            "worker_pool_timeout",
            "synthesis_timeout",
            "total_request_budget",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.chat_history_window < 0:
            raise ValueError("chat_history_window must not be negative")

        if self.worker_timeout >= self.worker_pool_timeout:
            raise ValueError(
                f"worker_timeout ({self.worker_timeout}s) must be shorter than "
                f"worker_pool_timeout ({self.worker_pool_timeout}s)"
            )
        phases = self.orchestrator_timeout + self.worker_pool_timeout + self.synthesis_timeout
        if phases > self.total_request_budget:
            raise ValueError(
                f"phase timeouts add up to {phases}s which exceeds "
                f"total_request_budget ({self.total_request_budget}s)"
            )
        if self.synthesis_max_tokens <= max(self.orchestrator_max_tokens, self.worker_max_tokens):
            raise ValueError("synthesis_max_tokens must exceed the worker/orchestrator budget")

    def phase_thresholds(self) -> dict[str, float]:
        """Cumulative elapsed-time thresholds used for stage attribution."""
        workers_end = self.orchestrator_timeout + self.worker_pool_timeout
        return {
            "orchestrator": self.orchestrator_timeout,
            "workers": workers_end,
            "synthesis": workers_end + self.synthesis_timeout,
        }
