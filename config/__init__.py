"""JSON configuration files with optional per-profile overrides.

``load_config("agent-pipeline")`` reads ``config/agent-pipeline.json`` and, when
``AGENT_PIPELINE_PROFILE`` names a sub-directory (``strict``), deep-merges the
file of the same name found there on top.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

CONFIG_ROOT = Path(__file__).resolve().parent

PROFILE_ENV_VAR = "AGENT_PIPELINE_PROFILE"


def _read(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return payload


def _overlay(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        merged[key] = _overlay(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged


def _profile_dir(profile: str | None) -> Path | None:
    slug = (profile if profile is not None else os.getenv(PROFILE_ENV_VAR, "")).strip().lower()
    if not slug or slug in {"0", "false", "off", "none"}:
        return None
    directory = CONFIG_ROOT / slug
    return directory if directory.is_dir() else None


def load_config(name: str, *, profile: str | None = None) -> Dict[str, Any]:
    """Return ``config/<name>.json`` with the active profile's overrides applied."""

    payload = _read(CONFIG_ROOT / f"{name}.json")
    directory = _profile_dir(profile)
    if directory is not None:
        payload = _overlay(payload, _read(directory / f"{name}.json"))
    return payload


__all__ = ["CONFIG_ROOT", "PROFILE_ENV_VAR", "load_config"]
