"""Admission-control behaviour for both window policies."""

import threading

import pytest

from agent_pipeline.config import RateLimitSettings
from agent_pipeline.ratelimit import (
    FixedWindowRateLimiter,
    SlidingWindowRateLimiter,
    build_rate_limiter,
)


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.mark.parametrize("limiter_cls", [FixedWindowRateLimiter, SlidingWindowRateLimiter])
def test_n_plus_one_call_is_denied_until_window_elapses(limiter_cls):
    clock = FakeClock()
    limiter = limiter_cls(clock=clock)

    decisions = [limiter.admit("ip", 3, 60_000) for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert decisions[-1].reset_time >= clock.now

    clock.now += 60_001
    assert limiter.admit("ip", 3, 60_000).allowed


def test_fixed_window_resets_entire_counter():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(clock=clock)
    first = limiter.admit("ip", 2, 1_000)
    assert first.reset_time == clock.now + 1_000

    clock.now += 999
    limiter.admit("ip", 2, 1_000)
    assert not limiter.admit("ip", 2, 1_000).allowed

    clock.now += 2
    decision = limiter.admit("ip", 2, 1_000)
    assert decision.allowed
    assert decision.remaining == 1


def test_sliding_window_releases_slots_one_at_a_time():
    clock = FakeClock(0)
    limiter = SlidingWindowRateLimiter(clock=clock)
    limiter.admit("ip", 2, 1_000)
    clock.now = 500
    limiter.admit("ip", 2, 1_000)

    clock.now = 900
    denied = limiter.admit("ip", 2, 1_000)
    assert not denied.allowed
    assert denied.reset_time == 1_000

    clock.now = 1_000
    assert limiter.admit("ip", 2, 1_000).allowed
    assert not limiter.admit("ip", 2, 1_000).allowed


def test_identifiers_are_isolated():
    limiter = FixedWindowRateLimiter(clock=FakeClock())
    assert limiter.admit("a", 1, 60_000).allowed
    assert not limiter.admit("a", 1, 60_000).allowed
    assert limiter.admit("b", 1, 60_000).allowed


def test_non_positive_limit_disables_admission_control():
    limiter = FixedWindowRateLimiter(clock=FakeClock())
    assert all(limiter.admit("ip", 0, 60_000).allowed for _ in range(5))
    assert len(limiter) == 0


def test_store_evicts_least_recently_used_identifier():
    limiter = FixedWindowRateLimiter(max_identifiers=2, clock=FakeClock())
    limiter.admit("a", 1, 60_000)
    limiter.admit("b", 1, 60_000)
    limiter.admit("a", 1, 60_000)
    limiter.admit("c", 1, 60_000)

    assert len(limiter) == 2
    # "b" was evicted, so it starts a fresh window.
    assert limiter.admit("b", 1, 60_000).allowed
    assert not limiter.admit("c", 1, 60_000).allowed


def test_clear_and_reset():
    limiter = FixedWindowRateLimiter(clock=FakeClock())
    limiter.admit("a", 1, 60_000)
    limiter.clear("a")
    assert limiter.admit("a", 1, 60_000).allowed
    limiter.reset()
    assert len(limiter) == 0


def test_concurrent_admissions_never_exceed_limit():
    limiter = FixedWindowRateLimiter()
    results = []
    lock = threading.Lock()

    def worker():
        decision = limiter.admit("shared", 10, 60_000)
        with lock:
            results.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(50)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 10


def test_build_rate_limiter_selects_policy():
    assert isinstance(build_rate_limiter(RateLimitSettings(algorithm="sliding")), SlidingWindowRateLimiter)
    assert isinstance(build_rate_limiter(RateLimitSettings()), FixedWindowRateLimiter)


def test_max_identifiers_must_be_positive():
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(max_identifiers=0)
