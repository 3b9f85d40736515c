"""In-process note storage scoped per owner.

Every read and write takes the owner's user id; a note belonging to someone
else is indistinguishable from a missing one.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from app.core.errors import NotFoundAppError
from app.schemas.notes import NoteRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Note:
    id: int
    user_id: int
    title: str
    content: str
    category: str
    created_at: datetime
    updated_at: datetime


def _not_found() -> NotFoundAppError:
    return NotFoundAppError(code="note_not_found", message="Note not found")


class NoteStore:
    """Thread-safe in-memory note registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notes: dict[int, Note] = {}
        self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._notes)

    def create(self, user_id: int, request: NoteRequest) -> Note:
        now = datetime.now(timezone.utc)
        with self._lock:
            note = Note(
                id=self._next_id,
                user_id=user_id,
                title=request.title,
                content=request.content,
                category=request.category,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._notes[note.id] = note

        logger.info("notes.created", extra={"user_id": user_id, "note_id": note.id})
        return note

    def get(self, note_id: int, user_id: int) -> Note:
        """Return one of the user's notes.

        Raises:
            NotFoundAppError: If the note does not exist or is not owned by
                ``user_id``.
        """

        with self._lock:
            note = self._notes.get(note_id)
        if note is None or note.user_id != user_id:
            raise _not_found()
        return note

    def list_notes(
        self,
        user_id: int,
        *,
        category: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Note], int]:
        """Return one page of the user's notes, newest first, and the total.

        Args:
            user_id: Owner.
            category: Exact category to filter by; empty or None disables it.
            page: 1-based page number.
            limit: Page size.

        Returns:
            ``(notes, total)`` where ``total`` counts every matching note.
        """

        with self._lock:
            owned = [n for n in self._notes.values() if n.user_id == user_id]

        if category:
            owned = [n for n in owned if n.category == category]
        owned.sort(key=lambda n: (n.created_at, n.id), reverse=True)

        offset = (page - 1) * limit
        return owned[offset : offset + limit], len(owned)

    def update(self, note_id: int, user_id: int, request: NoteRequest) -> Note:
        with self._lock:
            note = self._notes.get(note_id)
            if note is None or note.user_id != user_id:
                raise _not_found()
            updated = replace(
                note,
                title=request.title,
                content=request.content,
                category=request.category,
                updated_at=datetime.now(timezone.utc),
            )
            self._notes[note_id] = updated

        logger.info("notes.updated", extra={"user_id": user_id, "note_id": note_id})
        return updated

    def delete(self, note_id: int, user_id: int) -> None:
        with self._lock:
            note = self._notes.get(note_id)
            if note is None or note.user_id != user_id:
                raise _not_found()
            del self._notes[note_id]

        logger.info("notes.deleted", extra={"user_id": user_id, "note_id": note_id})

    def categories(self, user_id: int) -> list[str]:
        """Distinct non-empty categories of the user's notes, sorted."""

        with self._lock:
            return sorted({n.category for n in self._notes.values() if n.user_id == user_id and n.category})
