"""Repository-wide pytest configuration.

Pins the repository root on ``sys.path`` so ``agent_pipeline``, ``routes`` and
``services`` import the same way regardless of the invocation directory, and
resets process-wide caches between tests.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PYTHONPATH", str(ROOT))

_ENV_KEYS = [
    "AGENT_PIPELINE_PROFILE",
    "AGENT_BUDGET_CEILING_USD",
    "AGENT_MAX_GAS_RATIO",
    "AGENT_DEFAULT_CAPABILITIES",
    "AGENT_RATE_LIMIT_ALGORITHM",
    "AGENT_RATE_LIMIT_WINDOW_MS",
    "AGENT_RATE_LIMIT_MAX_IDENTIFIERS",
    "AGENT_RATE_LIMIT_CHAT",
    "AGENT_RATE_LIMIT_EXECUTE",
    "AGENT_RATE_LIMIT_STREAM",
    "AGENT_RATE_LIMIT_TRANSCRIBE",
    "AGENT_RATE_LIMIT_EXPLAIN",
    "AGENT_STREAM_STEP_DELAY",
    "AGENT_STREAM_REQUIRE_KNOWN_EXECUTION",
    "OPENAI_API_KEY",
    "SUI_NETWORK",
    "SUI_RPC_URL",
    "TRANSCRIPTION_SERVICE_URL",
    "TRANSCRIPTION_API_KEY",
    "TRANSCRIPTION_TIMEOUT",
    "TRANSCRIPTION_MAX_AUDIO_BYTES",
    "TRANSCRIBE_DEMO_MODE",
]


@pytest.fixture(autouse=True)
def _reset_agent_state(monkeypatch):
    """Ensure settings, limiter records and cached clients do not leak between tests."""

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)

    from agent_pipeline import config as settings
    from agent_pipeline import pipeline, policies

    settings.clear_caches()
    policies.load_default_policy.cache_clear()
    pipeline.reset_pipeline()
    try:
        from routes import agent, security
    except ImportError:
        # FastAPI-free environments still run the library suites.
        security = agent = None
    if security is not None:
        security.reset_rate_limits()
        agent.get_execution_registry().clear()

    yield

    settings.clear_caches()
    pipeline.reset_pipeline()
    if security is not None:
        security.reset_rate_limits()
