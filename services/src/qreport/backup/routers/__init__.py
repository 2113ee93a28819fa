"""Router package exports."""

from __future__ import annotations

from fastapi import APIRouter

from .backups import router as backups_router
from .health import router as health_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(backups_router)

__all__ = ["api_router", "backups_router", "health_router"]
