"""Caller identification, admission control and audit logging shared across routers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from agent_pipeline.config import get_rate_limit_settings
from agent_pipeline.errors import RateLimitExceeded
from agent_pipeline.ratelimit import RateLimiter, build_rate_limiter

from .metrics import RATE_LIMITED_TOTAL

_AUDIT_LOGGER = logging.getLogger("agent_api.audit")

_RATE_LIMITER: Optional[RateLimiter] = None
_RATE_LIMITER_LOCK = threading.Lock()


@dataclass(frozen=True)
class SecurityContext:
    """Identifies the caller of a request for admission control and auditing."""

    actor: str
    ip: str


def client_ip(request: Request) -> str:
    """Return the first ``X-Forwarded-For`` hop, the peer address, or ``unknown``."""

    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",", 1)[0].strip()
    if first:
        return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def get_rate_limiter() -> RateLimiter:
    global _RATE_LIMITER
    limiter = _RATE_LIMITER
    if limiter is None:
        # Sync dependencies run in the threadpool; every request must share one store.
        with _RATE_LIMITER_LOCK:
            if _RATE_LIMITER is None:
                _RATE_LIMITER = build_rate_limiter()
            limiter = _RATE_LIMITER
    return limiter


def reset_rate_limits() -> None:
    """Drop the limiter and its records; the next request rebuilds it from settings."""

    global _RATE_LIMITER
    with _RATE_LIMITER_LOCK:
        _RATE_LIMITER = None


def enforce_rate_limit(request: Request, endpoint: str) -> SecurityContext:
    """Admit the caller for ``endpoint`` or raise :class:`RateLimitExceeded`.

    Limits are tracked per endpoint so a burst of chat calls does not consume
    the execute quota.
    """

    ip = client_ip(request)
    settings = get_rate_limit_settings()
    decision = get_rate_limiter().admit(f"{endpoint}:{ip}", settings.limit_for(endpoint), settings.window_ms)
    context = SecurityContext(actor=request.headers.get("x-actor") or ip, ip=ip)
    request.state.security_context = context
    if not decision.allowed:
        RATE_LIMITED_TOTAL.labels(endpoint=endpoint).inc()
        audit_event(context, "security.rate_limited", endpoint=endpoint, reset_time=decision.reset_time)
        raise RateLimitExceeded(reset_time=decision.reset_time, remaining=decision.remaining)
    return context


def audit_event(context: SecurityContext, action: str, **extra: object) -> None:
    payload = {"actor": context.actor, "ip": context.ip, **extra}
    _AUDIT_LOGGER.info(action, extra=payload)
