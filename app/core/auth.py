"""Bearer token authentication for protected routes.

Design principles:
- Single Responsibility: only parses the Authorization header and delegates
  signature/expiry checks to the token manager
- Dependency Injection: used via FastAPI Depends() for loose coupling
- Testable: header parsing is a pure function
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header

from app.api.dependencies import get_token_manager
from app.core.errors import AuthenticationAppError
from app.services.auth_service import TokenClaims, TokenManager

logger = logging.getLogger(__name__)


def parse_bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Examples:
        >>> parse_bearer_token("Bearer abc.def.ghi")
        'abc.def.ghi'

    Raises:
        AuthenticationAppError: If the header is missing or malformed.
    """
    if not authorization:
        raise AuthenticationAppError(
            code="missing_token",
            message="Authorization header required",
        )

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise AuthenticationAppError(
            code="invalid_authorization_header",
            message="Invalid authorization header format",
            details={"hint": "Use 'Authorization: Bearer <token>'"},
        )
    return parts[1].strip()


async def verify_bearer_token(
    authorization: Annotated[str | None, Header()] = None,
    tokens: TokenManager = Depends(get_token_manager),
) -> TokenClaims:
    """FastAPI dependency returning the validated claims of the caller.

    Usage:
        @router.get("/me")
        async def me(claims: TokenClaims = Depends(verify_bearer_token)): ...

    Raises:
        AuthenticationAppError: 401 for missing, malformed, expired or forged tokens.
    """
    try:
        token = parse_bearer_token(authorization)
        claims = tokens.validate_token(token)
    except AuthenticationAppError as exc:
        logger.warning("auth.token_rejected", extra={"reason": exc.code})
        raise

    logger.debug("auth.token_accepted", extra={"user_id": claims.user_id})
    return claims
