from __future__ import annotations

from app.api.routes.auth import router as auth_router
from app.api.routes.health import router as health_router
from app.api.routes.notes import router as notes_router
from app.api.routes.user import router as user_router

__all__ = ["auth_router", "health_router", "notes_router", "user_router"]
