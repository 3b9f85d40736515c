from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_response_cache
from app.core.config import settings
from app.core.rate_limit import get_rate_limiter
from app.utils.response_cache import ResponseCache

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(cache: ResponseCache | None = Depends(get_response_cache)) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Also reports whether the response cache is active and the auth limiter's
    counters.

    Returns:
        dict: ``status``, ``service``, ``cache`` and ``rate_limit`` keys.
    """

    body: dict = {
        "status": "ok",
        "service": "daily-notes-api",
        "cache": "enabled" if cache is not None else "disabled",
        "rate_limit": "disabled",
    }
    if settings.rate_limit.enabled:
        limiter = get_rate_limiter("auth")
        stats = getattr(limiter, "stats", None)
        body["rate_limit"] = stats() if callable(stats) else "enabled"
    return body
