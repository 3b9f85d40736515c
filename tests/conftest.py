"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and pins the settings the
tests rely on.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-with-at-least-32-bytes!")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("CACHE_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.dependencies import get_auth_service, get_note_store, get_response_cache, get_user_store
from app.core.app_factory import create_app
from app.core.config import settings
from app.core.rate_limit import shutdown_rate_limiters
from app.services.auth_service import AuthService, TokenManager, UserStore
from app.services.note_service import NoteStore
from app.utils.response_cache import ResponseCache


class FakeClock:
    """Deterministic monotonic clock for limiter timing tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_rate_limiters() -> Iterator[None]:
    """Give every test fresh limiters (and stop their reaper threads)."""
    shutdown_rate_limiters()
    yield
    shutdown_rate_limiters()


@pytest.fixture
def user_store() -> UserStore:
    return UserStore()


@pytest.fixture
def token_manager() -> TokenManager:
    return TokenManager(
        secret=settings.auth.jwt_secret,
        expiry_hours=settings.auth.jwt_expiry_hours,
        issuer=settings.auth.jwt_issuer,
    )


@pytest.fixture
def note_store() -> NoteStore:
    return NoteStore()


@pytest.fixture
def response_cache() -> ResponseCache:
    return ResponseCache(ttl_seconds=60, max_entries=16)


@pytest.fixture
def app(
    user_store: UserStore,
    note_store: NoteStore,
    token_manager: TokenManager,
    response_cache: ResponseCache,
) -> FastAPI:
    """Application wired to per-test stores and cache."""
    application = create_app()
    service = AuthService(users=user_store, tokens=token_manager)
    application.dependency_overrides[get_user_store] = lambda: user_store
    application.dependency_overrides[get_auth_service] = lambda: service
    application.dependency_overrides[get_note_store] = lambda: note_store
    application.dependency_overrides[get_response_cache] = lambda: response_cache
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
