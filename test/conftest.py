"""Test configuration to ensure repo modules are importable."""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PYTHONPATH", str(ROOT))

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest


class FakeCompletions:
    def __init__(self, responses: List[Any]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        content = response if response is None or isinstance(response, str) else json.dumps(response)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeOpenAI:
    """Replays queued chat-completion answers; dicts are sent as JSON text."""

    def __init__(self, *responses: Any) -> None:
        self.completions = FakeCompletions(list(responses))
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> List[Dict[str, Any]]:
        return self.completions.calls


@pytest.fixture
def make_llm():
    """Return a factory building a ``LanguageModelClient`` over scripted answers."""

    from agent_pipeline.config import ModelSettings
    from agent_pipeline.llm import LanguageModelClient

    def factory(*responses: Any):
        fake = FakeOpenAI(*responses)
        return LanguageModelClient(ModelSettings(api_key="sk-test"), client=fake), fake

    return factory
