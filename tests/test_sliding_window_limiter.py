"""Unit tests for the sliding-window rate limiter."""

from __future__ import annotations

import random
import threading
import time

import pytest

from app.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter


def _limiter(clock, *, rate: int = 3, window: float = 10, cleanup: float = 20) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        rate=rate,
        window_seconds=window,
        cleanup_seconds=cleanup,
        clock=clock,
        start_reaper=False,
    )


def test_allows_up_to_rate_and_reports_remaining(clock) -> None:
    limiter = _limiter(clock)

    results = [limiter.check("k") for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]
    assert all(r.reset_in == 0.0 for r in results)
    assert all(r.retry_after_seconds is None for r in results)


def test_window_slides(clock) -> None:
    limiter = _limiter(clock, rate=3, window=10)

    for _ in range(3):
        assert limiter.check("k").allowed is True

    clock.advance(5)
    denied = limiter.check("k")
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_in == pytest.approx(5.0)
    assert denied.retry_after_seconds == 5

    clock.advance(6)
    allowed = limiter.check("k")
    assert allowed.allowed is True
    assert allowed.remaining == 2


def test_slots_free_one_at_a_time(clock) -> None:
    limiter = _limiter(clock, rate=2, window=10)

    assert limiter.check("k").allowed  # t=1000
    clock.advance(4)
    assert limiter.check("k").allowed  # t=1004
    clock.advance(2)
    assert limiter.check("k").reset_in == pytest.approx(4.0)

    # t=1010: the first request sits exactly on the cutoff and no longer counts
    clock.advance(4)
    result = limiter.check("k")
    assert result.allowed is True
    assert result.remaining == 0

    denied = limiter.check("k")
    assert denied.allowed is False
    assert denied.reset_in == pytest.approx(4.0)


def test_reset_in_is_non_increasing_while_denied(clock) -> None:
    limiter = _limiter(clock, rate=1, window=10)
    assert limiter.check("k").allowed

    previous = float("inf")
    for _ in range(9):
        clock.advance(1)
        result = limiter.check("k")
        assert result.allowed is False
        assert result.reset_in <= previous
        previous = result.reset_in

    clock.advance(1)
    assert limiter.check("k").allowed is True


def test_denial_does_not_consume_quota(clock) -> None:
    limiter = _limiter(clock, rate=2, window=10)
    limiter.check("k")
    clock.advance(1)
    limiter.check("k")

    for _ in range(5):
        assert limiter.check("k").allowed is False

    # Only the two admitted requests count: the first ages out at t=1010.
    clock.advance(9)
    assert limiter.check("k").allowed is True


def test_denial_refreshes_last_seen(clock) -> None:
    limiter = _limiter(clock, rate=1, window=10, cleanup=20)
    limiter.check("k")

    clock.advance(5)
    assert limiter.check("k").allowed is False

    # 22s after the admitted request but only 17s after the denied one.
    clock.advance(17)
    assert limiter.reap() == 0
    assert len(limiter) == 1


def test_keys_are_isolated(clock) -> None:
    limiter = _limiter(clock, rate=1)

    assert limiter.check("1.2.3.4").allowed is True
    assert limiter.check("1.2.3.4").allowed is False
    assert limiter.check("5.6.7.8").allowed is True


def test_empty_identity_is_a_valid_shared_key(clock) -> None:
    limiter = _limiter(clock, rate=1)

    assert limiter.check("").allowed is True
    assert limiter.check("").allowed is False


def test_reap_removes_idle_visitors_and_restores_quota(clock) -> None:
    limiter = _limiter(clock, rate=2, window=10, cleanup=20)
    limiter.check("idle")
    limiter.check("idle")
    assert limiter.check("idle").allowed is False
    assert len(limiter) == 1

    clock.advance(20)
    assert limiter.reap() == 0  # exactly at the threshold: kept

    clock.advance(1)
    assert limiter.reap() == 1
    assert len(limiter) == 0

    result = limiter.check("idle")
    assert result.allowed is True
    assert result.remaining == 1


def test_reap_keeps_recent_visitors(clock) -> None:
    limiter = _limiter(clock, cleanup=20)
    limiter.check("old")
    clock.advance(15)
    limiter.check("new")
    clock.advance(10)

    assert limiter.reap() == 1
    assert len(limiter) == 1
    assert limiter.stats()["reaped"] == 1


def test_reap_skips_visitor_whose_lock_is_held(clock) -> None:
    limiter = _limiter(clock, cleanup=20)
    limiter.check("busy")
    clock.advance(100)

    visitor = limiter._visitors["busy"]
    with visitor.lock:
        assert limiter.reap() == 0
    assert limiter.reap() == 1


def test_check_retries_when_visitor_reaped_before_lock(clock, monkeypatch: pytest.MonkeyPatch) -> None:
    limiter = _limiter(clock, rate=1, cleanup=20)
    limiter.check("k")
    stale = limiter._visitors["k"]
    clock.advance(30)
    assert limiter.reap() == 1
    assert stale.removed is True

    lookup = limiter._get_or_create
    calls: list[str] = []

    def _racy_lookup(identity: str):
        # First lookup returns the record the reaper just dropped.
        calls.append(identity)
        return stale if len(calls) == 1 else lookup(identity)

    monkeypatch.setattr(limiter, "_get_or_create", _racy_lookup)

    result = limiter.check("k")

    assert result.allowed is True
    assert len(calls) == 2
    assert limiter._visitors["k"] is not stale
    assert len(stale.timestamps) == 1


def test_quota_invariant_holds_for_random_traffic(clock) -> None:
    rate, window = 4, 10.0
    limiter = _limiter(clock, rate=rate, window=window, cleanup=window)
    rng = random.Random(1234)
    admitted: list[float] = []

    for _ in range(500):
        clock.advance(rng.choice([0.0, 0.1, 0.5, 1.0, 3.0, 7.5]))
        now = clock()
        if limiter.check("k").allowed:
            admitted.append(now)
        in_window = [t for t in admitted if now - window < t <= now]
        assert len(in_window) <= rate
        if rng.random() < 0.05:
            limiter.reap()


def test_concurrent_checks_admit_exactly_rate() -> None:
    rate, workers = 10, 50
    limiter = SlidingWindowRateLimiter(
        rate=rate, window_seconds=60, cleanup_seconds=60, start_reaper=False
    )
    barrier = threading.Barrier(workers)
    outcomes: list[bool] = []
    outcomes_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        allowed = limiter.check("same-ip").allowed
        with outcomes_lock:
            outcomes.append(allowed)

    threads = [threading.Thread(target=_worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(outcomes) == workers
    assert sum(outcomes) == rate
    assert len(limiter) == 1
    stats = limiter.stats()
    assert stats["allowed"] == rate
    assert stats["denied"] == workers - rate


def test_concurrent_checks_with_reaper_do_not_over_admit(clock) -> None:
    rate = 5
    limiter = _limiter(clock, rate=rate, window=10, cleanup=10)
    stop = threading.Event()

    def _reaper() -> None:
        while not stop.is_set():
            limiter.reap()

    reaper = threading.Thread(target=_reaper)
    reaper.start()
    try:
        results: list[bool] = []
        lock = threading.Lock()

        def _worker() -> None:
            for _ in range(20):
                allowed = limiter.check("k").allowed
                with lock:
                    results.append(allowed)

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
    finally:
        stop.set()
        reaper.join(timeout=5)

    # The clock never moves, so nothing is idle and nothing may be reaped.
    assert sum(results) == rate


def test_background_reaper_evicts_and_close_stops_it() -> None:
    limiter = SlidingWindowRateLimiter(rate=1, window_seconds=0.05, cleanup_seconds=0.05)
    try:
        limiter.check("k")
        deadline = time.monotonic() + 2
        while len(limiter) and time.monotonic() < deadline:
            time.sleep(0.02)
        assert len(limiter) == 0
    finally:
        limiter.close()

    assert limiter._reaper is not None
    assert not limiter._reaper.is_alive()
    limiter.close()  # idempotent


def test_context_manager_closes_reaper() -> None:
    with SlidingWindowRateLimiter(rate=1, window_seconds=1, cleanup_seconds=1) as limiter:
        assert limiter._reaper is not None and limiter._reaper.is_alive()
    assert not limiter._reaper.is_alive()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rate": 0, "window_seconds": 10, "cleanup_seconds": 10},
        {"rate": 1, "window_seconds": 0, "cleanup_seconds": 10},
        {"rate": 1, "window_seconds": 10, "cleanup_seconds": 0},
        {"rate": 1, "window_seconds": 10, "cleanup_seconds": 5},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(start_reaper=False, **kwargs)


def test_consume_delegates_to_check(clock) -> None:
    limiter = _limiter(clock, rate=1)

    assert limiter.consume("k").allowed is True
    assert limiter.check("k").allowed is False


def test_reset_at_adds_reset_in_to_epoch(clock) -> None:
    limiter = _limiter(clock, rate=1, window=10)
    limiter.check("k")
    clock.advance(2.5)

    denied = limiter.check("k")

    assert denied.reset_at(1_700_000_000.0) == 1_700_000_008
    assert denied.retry_after_seconds == 8
