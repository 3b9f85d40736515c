from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_auth_service
from app.core.rate_limit import enforce_auth_rate_limit
from app.schemas.auth import AuthPayload, LoginRequest, RegisterRequest, UserOut
from app.schemas.response import Envelope, success
from app.services.auth_service import AuthService

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
    dependencies=[Depends(enforce_auth_rate_limit)],
)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[AuthPayload],
    response_model_exclude_none=True,
)
def register(
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> dict:
    """Create an account and return it with a fresh access token.

    Rate limited per client IP. Returns 409 when the username or email is taken.
    """
    user, token = service.register(body)
    payload = AuthPayload(user=UserOut.model_validate(user), token=token)
    return success(payload.model_dump(mode="json"))


@router.post(
    "/login",
    response_model=Envelope[AuthPayload],
    response_model_exclude_none=True,
)
def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> dict:
    """Exchange username and password for an access token.

    Rate limited per client IP: failed and successful attempts both count.
    Declared sync so password hashing runs in the threadpool.
    """
    user, token = service.login(body.username, body.password)
    payload = AuthPayload(user=UserOut.model_validate(user), token=token)
    return success(payload.model_dump(mode="json"))
