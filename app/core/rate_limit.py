"""Rate limiting dependencies for FastAPI routes.

This module wires the sliding-window limiter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.
- One limiter per scope per process: ``auth`` guards the credential endpoints
  (register/login), ``general`` guards authenticated API routes.

Clients are identified by IP: first entry of X-Forwarded-For, else
X-Real-IP, else the socket peer address.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Awaitable, Callable, Literal

from fastapi import Request, Response

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from app.core.config import settings
from app.core.errors import RateLimitAppError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

RateLimitScope = Literal["auth", "general"]

_limiters: dict[str, AbstractRateLimiter] = {}
_limiter_configs: dict[str, tuple[int, int, int]] = {}
_limiters_lock = threading.Lock()


def _scope_config(scope: RateLimitScope) -> tuple[int, int, int]:
    """Return ``(rate, window_seconds, cleanup_seconds)`` for a scope."""

    cfg = settings.rate_limit
    if scope == "auth":
        return cfg.auth_requests, cfg.auth_window_seconds, cfg.auth_cleanup_seconds
    return cfg.general_requests, cfg.general_window_seconds, cfg.general_cleanup_seconds


def get_rate_limiter(scope: RateLimitScope = "auth") -> AbstractRateLimiter:
    """Return the process-wide rate limiter for ``scope``.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt and
    the previous one's reaper is stopped.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    config = _scope_config(scope)

    with _limiters_lock:
        previous = _limiters.get(scope)
        if previous is not None and _limiter_configs.get(scope) == config:
            return previous

        rate, window_seconds, cleanup_seconds = config
        limiter = SlidingWindowRateLimiter(
            rate=rate,
            window_seconds=window_seconds,
            cleanup_seconds=cleanup_seconds,
        )
        _limiters[scope] = limiter
        _limiter_configs[scope] = config

        logger.info(
            "rate_limit.limiter_created",
            extra={
                "scope": scope,
                "limit": rate,
                "window_s": window_seconds,
                "cleanup_s": cleanup_seconds,
            },
        )

    if previous is not None:
        # May run on the request path: signal the old reaper, never join it.
        previous.close(wait=False)
    return limiter


def shutdown_rate_limiters() -> None:
    """Stop every limiter's reaper and forget the instances."""

    with _limiters_lock:
        limiters = list(_limiters.values())
        _limiters.clear()
        _limiter_configs.clear()

    for limiter in limiters:
        limiter.close()


def client_identity(request: Request) -> str:
    """Derive the rate limit identity (client IP) for a request.

    Args:
        request: FastAPI request.

    Returns:
        str: The client address, or ``"unknown"`` when none is available.
    """

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _quota_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if not result.allowed:
        headers["X-RateLimit-Reset"] = str(result.reset_at(time.time()))
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def rate_limit(scope: RateLimitScope) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the limiter for ``scope``.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        """Consume one request from the caller's budget or raise 429.

        Raises:
            RateLimitAppError: When the caller exhausted its quota.
        """

        if not settings.rate_limit.enabled:
            return

        limiter = get_rate_limiter(scope)
        identity = client_identity(request)
        result = limiter.consume(identity)
        include_headers = settings.rate_limit.include_headers

        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "scope": scope,
                    "key_hash": hash_identifier(identity),
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            if include_headers:
                headers = _quota_headers(result)
                response.headers.update(headers)
                # Error responses are built from scratch by the exception
                # handlers; the middleware re-applies these to them.
                request.state.rate_limit_headers = headers
            return

        retry_after = result.retry_after_seconds or 0
        reset_at = result.reset_at(time.time())
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "scope": scope,
                "key_hash": hash_identifier(identity),
                "request_path": request.url.path,
                "limit": result.limit,
                "remaining": result.remaining,
                "retry_after_s": retry_after,
            },
        )

        raise RateLimitAppError(
            code="rate_limit_exceeded",
            message="Too many requests. Please try again later.",
            details={
                "limit": result.limit,
                "remaining": result.remaining,
                "retry_after": retry_after,
                "reset_at": reset_at,
            },
            headers=_quota_headers(result) if include_headers else None,
        )

    enforce_rate_limit.__name__ = f"enforce_{scope}_rate_limit"
    return enforce_rate_limit


enforce_auth_rate_limit = rate_limit("auth")
enforce_general_rate_limit = rate_limit("general")
