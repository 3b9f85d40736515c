"""Process-wide service instances exposed as FastAPI dependencies.

Tests swap these through ``app.dependency_overrides``.
"""

from __future__ import annotations

from app.core.config import settings
from app.services.auth_service import AuthService, TokenManager, UserStore
from app.services.note_service import NoteStore
from app.utils.response_cache import ResponseCache

_user_store = UserStore()
_token_manager = TokenManager(
    secret=settings.auth.jwt_secret,
    expiry_hours=settings.auth.jwt_expiry_hours,
    issuer=settings.auth.jwt_issuer,
)
_auth_service = AuthService(users=_user_store, tokens=_token_manager)
_note_store = NoteStore()
_response_cache = ResponseCache(
    ttl_seconds=settings.cache.ttl_seconds,
    max_entries=settings.cache.max_entries,
)


def get_user_store() -> UserStore:
    return _user_store


def get_token_manager() -> TokenManager:
    return _token_manager


def get_auth_service() -> AuthService:
    return _auth_service


def get_note_store() -> NoteStore:
    return _note_store


def get_response_cache() -> ResponseCache | None:
    """Return the response cache, or None when caching is disabled."""
    if not settings.cache.enabled:
        return None
    return _response_cache
