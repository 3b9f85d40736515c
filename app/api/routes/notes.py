from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.dependencies import get_note_store, get_response_cache
from app.core.auth import verify_bearer_token
from app.core.rate_limit import enforce_general_rate_limit
from app.schemas.notes import NoteOut, NoteRequest, PaginationMeta
from app.schemas.response import Envelope, success
from app.services.auth_service import TokenClaims
from app.services.note_service import Note, NoteStore
from app.utils.response_cache import ResponseCache, build_cache_key

router = APIRouter(
    tags=["Notes"],
    dependencies=[Depends(enforce_general_rate_limit)],
)

_DEFAULT_PAGE_SIZE = 10


def _cached(
    request: Request,
    response: Response,
    cache: ResponseCache | None,
    user_id: int,
    build: Callable[[], dict[str, Any]],
) -> dict[str, Any]:
    """Serve a per-user GET payload from the cache, building it on a miss."""

    if cache is None:
        return build()

    key = build_cache_key(request.url.path, user_id, request.query_params.multi_items())
    cached = cache.get(key)
    if cached is not None:
        response.headers["X-Cache"] = "HIT"
        return cached

    payload = build()
    cache.set(key, payload)
    response.headers["X-Cache"] = "MISS"
    return payload


def _note_payload(note: Note) -> dict[str, Any]:
    return NoteOut.model_validate(note).model_dump(mode="json")


@router.post(
    "/notes",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[NoteOut],
    response_model_exclude_none=True,
)
async def create_note(
    body: NoteRequest,
    claims: TokenClaims = Depends(verify_bearer_token),
    notes: NoteStore = Depends(get_note_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    note = notes.create(claims.user_id, body)
    if cache is not None:
        cache.invalidate_user(claims.user_id)
    return success(_note_payload(note))


@router.get(
    "/notes",
    response_model=Envelope[list[NoteOut]],
    response_model_exclude_none=True,
)
async def list_notes(
    request: Request,
    response: Response,
    category: str | None = Query(None, max_length=100),
    page: int = Query(1, description="1-based page; values below 1 mean 1"),
    limit: int = Query(_DEFAULT_PAGE_SIZE, le=100, description="Page size, at most 100"),
    claims: TokenClaims = Depends(verify_bearer_token),
    notes: NoteStore = Depends(get_note_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    """List the caller's notes, newest first.

    Filters by exact ``category`` and pages with ``page``/``limit``; ``meta``
    carries ``page``, ``limit``, ``total`` and ``total_page``.
    """
    page = page if page > 0 else 1
    limit = limit if limit > 0 else _DEFAULT_PAGE_SIZE

    def build() -> dict[str, Any]:
        items, total = notes.list_notes(claims.user_id, category=category, page=page, limit=limit)
        meta = PaginationMeta.build(page, limit, total)
        return success([_note_payload(n) for n in items], meta=meta.model_dump())

    return _cached(request, response, cache, claims.user_id, build)


@router.get(
    "/notes/{note_id}",
    response_model=Envelope[NoteOut],
    response_model_exclude_none=True,
)
async def get_note(
    note_id: int,
    request: Request,
    response: Response,
    claims: TokenClaims = Depends(verify_bearer_token),
    notes: NoteStore = Depends(get_note_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    """Return one note; another user's note is reported as not found."""
    return _cached(
        request,
        response,
        cache,
        claims.user_id,
        lambda: success(_note_payload(notes.get(note_id, claims.user_id))),
    )


@router.put(
    "/notes/{note_id}",
    response_model=Envelope[NoteOut],
    response_model_exclude_none=True,
)
async def update_note(
    note_id: int,
    body: NoteRequest,
    claims: TokenClaims = Depends(verify_bearer_token),
    notes: NoteStore = Depends(get_note_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    note = notes.update(note_id, claims.user_id, body)
    if cache is not None:
        cache.invalidate_user(claims.user_id)
    return success(_note_payload(note))


@router.delete(
    "/notes/{note_id}",
    response_model=Envelope[dict],
    response_model_exclude_none=True,
)
async def delete_note(
    note_id: int,
    claims: TokenClaims = Depends(verify_bearer_token),
    notes: NoteStore = Depends(get_note_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    notes.delete(note_id, claims.user_id)
    if cache is not None:
        cache.invalidate_user(claims.user_id)
    return success(message="Note deleted successfully")


@router.get(
    "/categories",
    response_model=Envelope[list[str]],
    response_model_exclude_none=True,
)
async def list_categories(
    request: Request,
    response: Response,
    claims: TokenClaims = Depends(verify_bearer_token),
    notes: NoteStore = Depends(get_note_store),
    cache: ResponseCache | None = Depends(get_response_cache),
) -> dict:
    """Distinct non-empty categories used by the caller's notes."""
    return _cached(
        request,
        response,
        cache,
        claims.user_id,
        lambda: success(notes.categories(claims.user_id)),
    )
