from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    """Payload for account registration."""

    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=100, pattern=_EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=100)

    @field_validator("username", "email", "full_name", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Payload for username/password login."""

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=100)


class UpdateProfileRequest(BaseModel):
    """Payload for profile updates."""

    full_name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., max_length=100, pattern=_EMAIL_PATTERN)

    @field_validator("email", "full_name", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class UserOut(BaseModel):
    """Public view of a user account (never includes the password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    created_at: datetime
    updated_at: datetime


class AuthPayload(BaseModel):
    """Returned by register/login."""

    user: UserOut
    token: str = Field(..., description="Bearer access token (JWT, HS256)")


class ChangePasswordRequest(BaseModel):
    """Payload for changing the current user's password."""

    current_password: str = Field(..., min_length=1, max_length=100)
    new_password: str = Field(..., min_length=6, max_length=100)
