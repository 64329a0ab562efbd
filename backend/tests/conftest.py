import os
import sys
from pathlib import Path

import pytest


# Ensure backend modules (e.g. main.py, recommendation/) are importable even when running pytest from repo root.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

# Avoid requiring real credentials during import-time initialization.
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")


@pytest.fixture
def fast_config():
    """Pipeline configuration with sub-second timeouts that still nest."""
    from recommendation.settings import PipelineConfig

    return PipelineConfig(
        api_key="test-openai-key",
        orchestrator_timeout=0.2,
        worker_timeout=0.1,
        worker_pool_timeout=0.3,
        synthesis_timeout=0.2,
        total_request_budget=1.0,
    )
