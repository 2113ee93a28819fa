"""Request and response bodies for the backup HTTP endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .snapshot import CamelModel


class ShareRequest(CamelModel):
    backup_id: str = Field(min_length=1)


class ShareResponse(CamelModel):
    backup_id: str
    bundle_path: str
    size_bytes: int
    entry_count: int
    expires_at: datetime


class DeleteResponse(CamelModel):
    backup_id: str
    deleted_count: int
    failures: list[str] = Field(default_factory=list)


__all__ = ["DeleteResponse", "ShareRequest", "ShareResponse"]
