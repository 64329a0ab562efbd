"""Application configuration helpers."""
from __future__ import annotations

import os
from dataclasses import fields
from functools import lru_cache

from dotenv import load_dotenv

from recommendation.settings import PipelineConfig

# Load variables from .env into process environment as early as possible.
load_dotenv()

# Environment overrides for PipelineConfig fields, by field name.
_ENV_OVERRIDES = {
    "orchestrator_model": "ORCHESTRATOR_MODEL",
    "worker_model": "WORKER_MODEL",
    "synthesis_model": "SYNTHESIS_MODEL",
    "chat_model": "CHAT_MODEL",
    "orchestrator_max_tokens": "ORCHESTRATOR_MAX_TOKENS",
    "worker_max_tokens": "WORKER_MAX_TOKENS",
    "synthesis_max_tokens": "SYNTHESIS_MAX_TOKENS",
    "chat_max_tokens": "CHAT_MAX_TOKENS",
    "orchestrator_temperature": "ORCHESTRATOR_TEMPERATURE",
    "worker_temperature": "WORKER_TEMPERATURE",
    "synthesis_temperature": "SYNTHESIS_TEMPERATURE",
    "chat_temperature": "CHAT_TEMPERATURE",
    "orchestrator_timeout": "ORCHESTRATOR_TIMEOUT_SECONDS",
    "worker_timeout": "WORKER_TIMEOUT_SECONDS",
    "worker_pool_timeout": "WORKER_POOL_TIMEOUT_SECONDS",
    "synthesis_timeout": "SYNTHESIS_TIMEOUT_SECONDS",
    "total_request_budget": "TOTAL_REQUEST_BUDGET_SECONDS",
    "chat_history_window": "CHAT_HISTORY_WINDOW",
}


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Environment variable {name} must be set")
    return value


def _optional_env(name: str) -> str | None:
    value = os.getenv(name)
    return value or None


def _convert(name: str, raw: str, kind: type) -> object:
    if kind is str:
        return raw
    try:
        return kind(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be a valid {kind.__name__}") from exc


@lru_cache(maxsize=None)
def get_openai_api_key() -> str:
    """Ensure the OpenAI API key is configured and return it."""
    return _require_env("OPENAI_API_KEY")


def load_pipeline_config() -> PipelineConfig:
    """Build the pipeline configuration from the environment.

    ``OPENAI_API_KEY`` is required.  Every other field keeps its default
    unless the matching variable in ``_ENV_OVERRIDES`` is set.
    """
    defaults = {f.name: f.default for f in fields(PipelineConfig)}
    overrides: dict[str, object] = {}
    for field_name, env_name in _ENV_OVERRIDES.items():
        raw = _optional_env(env_name)
        if raw is not None:
            overrides[field_name] = _convert(env_name, raw.strip(), type(defaults[field_name]))

    try:
        return PipelineConfig(api_key=get_openai_api_key(), **overrides)
    except ValueError as exc:
        raise RuntimeError(f"Invalid pipeline configuration: {exc}") from exc
