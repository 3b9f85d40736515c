from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from app.api.dependencies import get_auth_service, get_response_cache, get_user_store
from app.core.auth import verify_bearer_token
from app.core.errors import NotFoundAppError
from app.core.rate_limit import enforce_general_rate_limit
from app.schemas.auth import ChangePasswordRequest, UpdateProfileRequest, UserOut
from app.schemas.response import Envelope, success
from app.services.auth_service import AuthService, TokenClaims, UserStore
from app.utils.response_cache import ResponseCache, build_cache_key

router = APIRouter(
    prefix="/user",
    tags=["User"],
    dependencies=[Depends(enforce_general_rate_limit)],
)


@router.get(
    "/profile",
    response_model=Envelope[UserOut],
    response_model_exclude_none=True,
)
async def get_profile(
    request: Request,
    response: Response,
    claims: TokenClaims = Depends(verify_bearer_token),
    users: UserStore = Depends(get_user_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    """Return the authenticated user's profile.

    Served from the per-user response cache when enabled; the X-Cache header
    reports HIT or MISS.
    """
    cache_key = build_cache_key(request.url.path, claims.user_id, request.query_params.multi_items())
    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            response.headers["X-Cache"] = "HIT"
            return cached

    user = users.get_by_id(claims.user_id)
    if user is None:
        raise NotFoundAppError(code="user_not_found", message="User not found")

    payload = success(UserOut.model_validate(user).model_dump(mode="json"))
    if cache is not None:
        cache.set(cache_key, payload)
        response.headers["X-Cache"] = "MISS"
    return payload


@router.put(
    "/profile",
    response_model=Envelope[UserOut],
    response_model_exclude_none=True,
)
async def update_profile(
    body: UpdateProfileRequest,
    claims: TokenClaims = Depends(verify_bearer_token),
    users: UserStore = Depends(get_user_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    """Update full name and email; invalidates the user's cached responses."""
    user = users.update_profile(claims.user_id, full_name=body.full_name, email=body.email)
    if cache is not None:
        cache.invalidate_user(claims.user_id)
    return success(UserOut.model_validate(user).model_dump(mode="json"))


@router.post(
    "/change-password",
    response_model=Envelope[dict],
    response_model_exclude_none=True,
)
def change_password(
    body: ChangePasswordRequest,
    claims: TokenClaims = Depends(verify_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> dict:
    """Change the password after verifying the current one (401 if wrong).

    Sync so both PBKDF2 rounds run in the threadpool.
    """
    service.change_password(claims.user_id, body.current_password, body.new_password)
    return success(message="Password changed successfully")
