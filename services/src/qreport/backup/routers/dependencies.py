"""Dependency injection helpers for FastAPI routers."""

from __future__ import annotations

from typing import cast

from fastapi import Request

from ..config import BackupSettings
from ..diagnostics import DiagnosticLogger
from ..layout import BackupLayoutManager
from ..scheduler import VerificationScheduler
from ..serializer import SnapshotSerializer
from ..share_service import ShareService
from ..storage import LocalFileStore

__all__ = [
    "get_diagnostics",
    "get_layout",
    "get_serializer",
    "get_settings",
    "get_share_service",
    "get_store",
    "get_verification_scheduler",
]


def get_settings(request: Request) -> BackupSettings:
    """Return the service settings configured for the application."""

    return cast(BackupSettings, request.app.state.settings)


def get_diagnostics(request: Request) -> DiagnosticLogger:
    return cast(DiagnosticLogger, request.app.state.diagnostics)


def get_store(request: Request) -> LocalFileStore:
    return cast(LocalFileStore, request.app.state.store)


def get_serializer(request: Request) -> SnapshotSerializer:
    return cast(SnapshotSerializer, request.app.state.serializer)


def get_layout(request: Request) -> BackupLayoutManager:
    """Return the backup layout manager bound to the configured backups root."""

    return cast(BackupLayoutManager, request.app.state.layout)


def get_share_service(request: Request) -> ShareService:
    return cast(ShareService, request.app.state.share_service)


def get_verification_scheduler(request: Request) -> VerificationScheduler | None:
    """Return the verifier, or ``None`` when it is disabled by configuration."""

    return cast("VerificationScheduler | None", getattr(request.app.state, "verification_scheduler", None))
