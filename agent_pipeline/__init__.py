"""Natural-language command to Sui transaction compilation pipeline."""

from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Dict

_MODULES = [
    "bcs",
    "config",
    "errors",
    "intent",
    "llm",
    "models",
    "pipeline",
    "planner",
    "policies",
    "ratelimit",
    "rpc",
    "safety",
    "simulator",
    "stream",
    "transaction",
    "transcription",
]
__all__ = list(_MODULES)

_CACHE: Dict[str, ModuleType] = {}


def __getattr__(name: str) -> ModuleType:
    # Submodules pull in openai/httpx; load them on first access only.
    if name not in _MODULES:
        raise AttributeError(name)
    if name not in _CACHE:
        _CACHE[name] = import_module(f".{name}", __name__)
    return _CACHE[name]


def __dir__() -> list[str]:
    return sorted(set(__all__ + list(globals().keys())))
