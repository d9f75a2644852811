"""Capability allowlist helpers."""

from __future__ import annotations

import os
import re
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Tuple

from config import load_config

_FALLBACK_TARGETS = (
    "0x2::coin::split",
    "0x2::coin::merge",
    "0x2::transfer::public_transfer",
)

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


@lru_cache(maxsize=1)
def load_default_policy() -> Dict[str, Any]:
    """Return the default capability policy from ``config/policies.default.json``."""

    payload = load_config("policies.default")
    if not payload:
        return {"allowTargets": list(_FALLBACK_TARGETS)}
    return payload


def default_allowlist() -> Tuple[str, ...]:
    """Return the allowlist used when a caller supplies no capabilities.

    ``AGENT_DEFAULT_CAPABILITIES`` (comma separated) overrides the JSON file.
    """

    override = os.getenv("AGENT_DEFAULT_CAPABILITIES", "").strip()
    if override:
        return tuple(item.strip() for item in override.split(",") if item.strip())
    targets = load_default_policy().get("allowTargets") or []
    cleaned = tuple(str(target).strip() for target in targets if str(target).strip())
    return cleaned or _FALLBACK_TARGETS


def resolve_allowlist(capabilities: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Return the caller's allowlist, or the default when none was supplied."""

    if capabilities is None:
        return default_allowlist()
    return tuple(str(item).strip() for item in capabilities if str(item).strip())


def normalize_target(target: str) -> str:
    """Canonicalise ``<package>::<module>::<function>`` for membership checks.

    Hex package addresses are lower-cased and left-padded to 32 bytes so that
    ``0x2::coin::split`` and ``0x000…02::coin::split`` compare equal.  Anything
    that does not look like a Move target is returned stripped but otherwise
    untouched.
    """

    text = target.strip()
    parts = text.split("::")
    if len(parts) != 3:
        return text
    package, module, function = parts
    if _HEX_ADDRESS.match(package):
        package = "0x" + package[2:].lower().rjust(64, "0")
    return f"{package}::{module}::{function}"


def allowlist_contains(allowlist: Iterable[str], target: str) -> bool:
    normalized = normalize_target(target)
    return any(normalize_target(item) == normalized for item in allowlist)
