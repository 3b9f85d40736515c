"""Response envelope shared by every JSON endpoint.

Successful responses carry ``data`` (and optionally ``meta``); failures carry
``message`` plus an ``error`` block, and validation failures list per-field
problems under ``errors``.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class FieldError(BaseModel):
    """A single request validation problem."""

    field: str = Field(..., description="Snake-case path of the offending field")
    message: str = Field(..., description="Human-readable explanation")


class ErrorBody(BaseModel):
    """Machine-readable part of an error response."""

    code: str
    request_id: str | None = None
    details: dict[str, Any] | None = None


class Envelope(BaseModel, Generic[T]):
    """Standard response wrapper."""

    success: bool
    message: str | None = None
    data: T | None = None
    meta: dict[str, Any] | None = None
    errors: list[FieldError] | None = None
    error: ErrorBody | None = None


def success(data: Any = None, *, message: str | None = None, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a success envelope payload, omitting empty fields."""

    payload: dict[str, Any] = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    if meta is not None:
        payload["meta"] = meta
    return payload


def failure(
    message: str,
    *,
    code: str,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
    errors: list[FieldError] | None = None,
) -> dict[str, Any]:
    """Build an error envelope payload, omitting empty fields."""

    error: dict[str, Any] = {"code": code, "request_id": request_id}
    if details:
        error["details"] = details

    payload: dict[str, Any] = {"success": False, "message": message, "error": error}
    if errors:
        payload["errors"] = [e.model_dump() for e in errors]
    return payload
