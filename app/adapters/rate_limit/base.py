"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Requests still available in the trailing window (0 when blocked).
        reset_in: Seconds until the oldest counted request ages out and frees
            a slot. Always 0.0 for allowed requests.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_in: float

    @property
    def retry_after_seconds(self) -> int | None:
        """Whole seconds a blocked client should wait (None when allowed)."""
        if self.allowed:
            return None
        return max(1, int(math.ceil(self.reset_in)))

    def reset_at(self, now_epoch: float) -> int:
        """UNIX epoch seconds at which a slot becomes available."""
        return int(math.ceil(now_epoch + self.reset_in))


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Consume one unit of rate limit budget for a given key.

        Args:
            key: Unique identifier (e.g., client IP address).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def close(self, wait: bool = True) -> None:
        """Release background resources held by the limiter (if any).

        Args:
            wait: Block until background workers have exited.
        """
