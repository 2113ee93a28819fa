"""Health endpoint with a summary of the latest backup verification."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..scheduler import VerificationScheduler
from .dependencies import get_verification_scheduler

__all__ = ["router", "get_service_version", "health"]


router = APIRouter(prefix="/api/v1", tags=["health"])


def get_service_version(request: Request) -> str:
    """Return the service version attached to the application state."""

    return getattr(request.app.state, "service_version", "unknown")


def _health_payload(version: str, verifier: VerificationScheduler | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": "ok", "version": version}

    if verifier is None:
        payload["backup_status"] = "warning"
        payload["backup_enabled"] = False
        payload["backup_message"] = "Backup verifier disabled by configuration."
        return payload

    payload["backup_enabled"] = True
    report = verifier.last_report()
    if report is None:
        payload["backup_status"] = "warning"
        payload["backup_message"] = "No verification has run yet."
        return payload

    summary = report.get("summary", {})
    if summary.get("error"):
        payload["backup_status"] = "error"
    elif summary.get("warning"):
        payload["backup_status"] = "warning"
    else:
        payload["backup_status"] = "ok"
    payload["backup_last_run"] = report.get("completed_at")
    payload["backup_checked"] = report.get("checked", 0)
    payload["backup_failed"] = summary.get("error", 0)
    return payload


@router.get("/healthz")
async def health(
    version: str = Depends(get_service_version),
    verifier: VerificationScheduler | None = Depends(get_verification_scheduler),
) -> dict[str, Any]:
    return _health_payload(version, verifier)
