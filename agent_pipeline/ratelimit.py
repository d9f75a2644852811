"""In-memory admission control shared by every HTTP entry point."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Generic, Optional, TypeVar

from .config import RateLimitSettings, get_rate_limit_settings


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: int


@dataclass
class _WindowRecord:
    count: int
    reset_time: int


_R = TypeVar("_R")


class RateLimiter(Generic[_R]):
    """Base class owning the per-identifier store.

    The store is an LRU-ordered mapping capped at ``max_identifiers``; the least
    recently admitted identifier is evicted when a new one arrives at capacity.
    A limit of zero or less disables admission control for that call.
    """

    def __init__(self, *, max_identifiers: int = 10_000, clock: Optional[Callable[[], int]] = None) -> None:
        if max_identifiers <= 0:
            raise ValueError("max_identifiers must be positive")
        self._max_identifiers = max_identifiers
        self._clock = clock or _now_ms
        self._lock = threading.Lock()
        self._records: "OrderedDict[str, _R]" = OrderedDict()

    def admit(self, identifier: str, max_requests: int, window_ms: int) -> RateLimitDecision:
        now = self._clock()
        if max_requests <= 0:
            return RateLimitDecision(allowed=True, remaining=0, reset_time=now)
        with self._lock:
            decision = self._admit_locked(identifier, max_requests, window_ms, now)
            self._records.move_to_end(identifier)
            while len(self._records) > self._max_identifiers:
                self._records.popitem(last=False)
        return decision

    def _admit_locked(self, identifier: str, max_requests: int, window_ms: int, now: int) -> RateLimitDecision:
        raise NotImplementedError

    def clear(self, identifier: str) -> None:
        with self._lock:
            self._records.pop(identifier, None)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class FixedWindowRateLimiter(RateLimiter[_WindowRecord]):
    """Counter that resets entirely once ``now`` passes the window's reset time."""

    def _admit_locked(self, identifier: str, max_requests: int, window_ms: int, now: int) -> RateLimitDecision:
        record = self._records.get(identifier)
        if record is None or now > record.reset_time:
            record = _WindowRecord(count=1, reset_time=now + window_ms)
            self._records[identifier] = record
            return RateLimitDecision(allowed=True, remaining=max_requests - 1, reset_time=record.reset_time)
        if record.count >= max_requests:
            return RateLimitDecision(allowed=False, remaining=0, reset_time=record.reset_time)
        record.count += 1
        return RateLimitDecision(
            allowed=True,
            remaining=max_requests - record.count,
            reset_time=record.reset_time,
        )


class SlidingWindowRateLimiter(RateLimiter[Deque[int]]):
    """Log of call timestamps; admits while fewer than ``max_requests`` fall in the trailing window."""

    def _admit_locked(self, identifier: str, max_requests: int, window_ms: int, now: int) -> RateLimitDecision:
        bucket = self._records.get(identifier)
        if bucket is None:
            bucket = deque()
            self._records[identifier] = bucket
        window_start = now - window_ms
        while bucket and bucket[0] <= window_start:
            bucket.popleft()
        if len(bucket) >= max_requests:
            return RateLimitDecision(allowed=False, remaining=0, reset_time=bucket[0] + window_ms)
        bucket.append(now)
        return RateLimitDecision(
            allowed=True,
            remaining=max_requests - len(bucket),
            reset_time=bucket[0] + window_ms,
        )


def build_rate_limiter(
    settings: Optional[RateLimitSettings] = None,
    *,
    clock: Optional[Callable[[], int]] = None,
) -> RateLimiter:
    """Instantiate the limiter variant selected by configuration."""

    settings = settings or get_rate_limit_settings()
    cls = SlidingWindowRateLimiter if settings.algorithm == "sliding" else FixedWindowRateLimiter
    return cls(max_identifiers=settings.max_identifiers, clock=clock)
