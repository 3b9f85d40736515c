"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe with two lock levels: a registry lock guards insertion/removal
  of visitor records, and each visitor has its own lock guarding its history.
  The registry lock is never held while a quota check runs, so unrelated
  identities do not serialize on each other.
- A daemon reaper thread evicts visitors not seen for ``cleanup_seconds``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _Visitor:
    last_seen: float
    timestamps: deque[float] = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Set by the reaper (under ``lock``) once the record left the registry.
    removed: bool = False


class SlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests over a trailing time window per key.

    Each identity may perform at most ``rate`` requests within any trailing
    ``window_seconds`` interval. Unlike a fixed window, quota frees up one slot
    at a time as individual requests age out, and the reported reset time is
    the exact moment the oldest counted request leaves the window.

    Important:
        ``cleanup_seconds`` must be at least ``window_seconds``. Reaping keys
        off last-seen recency only, so a shorter cleanup interval would drop
        histories that still hold unexpired timestamps and hand out quota early.
    """

    def __init__(
        self,
        *,
        rate: int,
        window_seconds: float,
        cleanup_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        start_reaper: bool = True,
    ) -> None:
        """Initialize the limiter and (optionally) start its reaper thread.

        Args:
            rate: Maximum number of requests per window.
            window_seconds: Trailing window duration in seconds.
            cleanup_seconds: Reaper sweep interval, also the idle time after
                which a visitor is evicted.
            clock: Time source returning seconds; must be monotonic.
            start_reaper: Start the background reaper thread. Tests disable it
                and call ``reap()`` directly.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if rate < 1:
            raise ValueError("rate must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if cleanup_seconds <= 0:
            raise ValueError("cleanup_seconds must be > 0")
        if cleanup_seconds < window_seconds:
            raise ValueError("cleanup_seconds must be >= window_seconds")

        self._rate = rate
        self._window = float(window_seconds)
        self._cleanup = float(cleanup_seconds)
        self._clock = clock

        self._registry_lock = threading.Lock()
        self._visitors: dict[str, _Visitor] = {}

        self._stats_lock = threading.Lock()
        self._allowed = 0
        self._denied = 0
        self._reaped = 0

        self._stop_event = threading.Event()
        self._reaper: threading.Thread | None = None
        if start_reaper:
            self._reaper = threading.Thread(
                target=self._run_reaper,
                name="rate-limit-reaper",
                daemon=True,
            )
            self._reaper.start()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SlidingWindowRateLimiter(rate={self._rate}, window_seconds={self._window}, "
            f"cleanup_seconds={self._cleanup}, visitors={len(self)})"
        )

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._visitors)

    def __enter__(self) -> "SlidingWindowRateLimiter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def rate(self) -> int:
        return self._rate

    @property
    def window_seconds(self) -> float:
        return self._window

    @property
    def cleanup_seconds(self) -> float:
        return self._cleanup

    def consume(self, key: str) -> RateLimitResult:
        """Consume one request for ``key``. See ``check``."""
        return self.check(key)

    def check(self, identity: str) -> RateLimitResult:
        """Decide whether ``identity`` may perform a request right now.

        Prunes expired timestamps, refreshes last-seen (even on denial) and,
        when quota is available, records the request. The whole sequence runs
        under the visitor's own lock.

        Args:
            identity: Opaque caller key. The empty string is a valid key.

        Returns:
            RateLimitResult with the decision and quota telemetry.
        """
        while True:
            visitor = self._get_or_create(identity)
            with visitor.lock:
                if visitor.removed:
                    # Reaped between lookup and lock; retry on a live record.
                    continue
                result = self._check_locked(visitor)

            with self._stats_lock:
                if result.allowed:
                    self._allowed += 1
                else:
                    self._denied += 1
            return result

    def reap(self, now: float | None = None) -> int:
        """Evict visitors idle for longer than the cleanup interval.

        Visitors whose lock is currently held by a check are skipped: they are
        active and will be reconsidered on the next sweep.

        Args:
            now: Reference time; defaults to the limiter clock.

        Returns:
            Number of visitors removed.
        """
        if now is None:
            now = self._clock()

        removed = 0
        with self._registry_lock:
            for identity, visitor in list(self._visitors.items()):
                if not visitor.lock.acquire(blocking=False):
                    continue
                try:
                    if now - visitor.last_seen > self._cleanup:
                        visitor.removed = True
                        del self._visitors[identity]
                        removed += 1
                finally:
                    visitor.lock.release()
            remaining = len(self._visitors)

        if removed:
            with self._stats_lock:
                self._reaped += removed
            logger.debug(
                "rate_limit.reaped",
                extra={"removed": removed, "visitors": remaining},
            )
        return removed

    def stats(self) -> dict[str, int | float]:
        """Return lightweight limiter metrics without exposing identities."""
        visitors = len(self)
        with self._stats_lock:
            return {
                "rate": self._rate,
                "window_seconds": self._window,
                "cleanup_seconds": self._cleanup,
                "visitors": visitors,
                "allowed": self._allowed,
                "denied": self._denied,
                "reaped": self._reaped,
            }

    def close(self, wait: bool = True) -> None:
        """Stop the reaper thread. Idempotent.

        Args:
            wait: Join the reaper before returning. With ``wait=False`` the
                thread is only signalled and exits on its own shortly after.
        """
        self._stop_event.set()
        reaper = self._reaper
        if wait and reaper is not None and reaper.is_alive() and reaper is not threading.current_thread():
            reaper.join()

    def _get_or_create(self, identity: str) -> _Visitor:
        with self._registry_lock:
            visitor = self._visitors.get(identity)
            if visitor is None:
                visitor = _Visitor(last_seen=self._clock())
                self._visitors[identity] = visitor
            return visitor

    def _check_locked(self, visitor: _Visitor) -> RateLimitResult:
        now = self._clock()
        cutoff = now - self._window
        timestamps = visitor.timestamps

        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

        visitor.last_seen = now

        if len(timestamps) >= self._rate:
            return RateLimitResult(
                allowed=False,
                limit=self._rate,
                remaining=max(0, self._rate - len(timestamps)),
                reset_in=max(0.0, timestamps[0] + self._window - now),
            )

        timestamps.append(now)
        return RateLimitResult(
            allowed=True,
            limit=self._rate,
            remaining=self._rate - len(timestamps),
            reset_in=0.0,
        )

    def _run_reaper(self) -> None:
        while not self._stop_event.wait(self._cleanup):
            self.reap()
