"""Backup API router: listing, deletion, verification and sharing."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Query, status

from ..backup_verifier import verify_backup
from ..config import BackupSettings
from ..diagnostics import DiagnosticLogger
from ..errors import BackupError
from ..http import raise_backup_error, raise_filesystem_error
from ..layout import BackupLayoutManager
from ..models.api import DeleteResponse, ShareRequest, ShareResponse
from ..models.snapshot import BackupSortOrder
from ..serializer import SnapshotSerializer
from ..share_service import ShareService
from ..storage import LocalFileStore
from .dependencies import (
    get_diagnostics,
    get_layout,
    get_serializer,
    get_settings,
    get_share_service,
    get_store,
)

router = APIRouter(prefix="/backups", tags=["backups"])


@router.get("", status_code=status.HTTP_200_OK)
async def list_backups(
    sort: BackupSortOrder = Query(BackupSortOrder.DATE_DESC),
    layout: BackupLayoutManager = Depends(get_layout),
) -> list[dict[str, Any]]:
    infos = await asyncio.to_thread(layout.list, sort)
    return [info.to_payload() for info in infos]


@router.delete("/{backup_id}", status_code=status.HTTP_200_OK)
async def delete_backup(
    backup_id: str,
    layout: BackupLayoutManager = Depends(get_layout),
    diagnostics: DiagnosticLogger = Depends(get_diagnostics),
) -> dict[str, Any]:
    try:
        result = await asyncio.to_thread(layout.delete, backup_id)
    except BackupError as exc:
        raise_backup_error(exc, diagnostics=diagnostics)
    return DeleteResponse(
        backup_id=backup_id,
        deleted_count=result.deleted_count,
        failures=result.failures,
    ).to_payload()


@router.get("/{backup_id}/verify", status_code=status.HTTP_200_OK)
async def verify(
    backup_id: str,
    settings: BackupSettings = Depends(get_settings),
    layout: BackupLayoutManager = Depends(get_layout),
    serializer: SnapshotSerializer = Depends(get_serializer),
    store: LocalFileStore = Depends(get_store),
    diagnostics: DiagnosticLogger = Depends(get_diagnostics),
) -> dict[str, Any]:
    try:
        backup_dir = layout.find(backup_id)
    except BackupError as exc:
        raise_backup_error(exc, diagnostics=diagnostics)
    report = await asyncio.to_thread(
        verify_backup,
        backup_dir,
        layout=layout,
        serializer=serializer,
        store=store,
        threshold=settings.validation_threshold,
    )
    return report.to_dict()


@router.post("/share", status_code=status.HTTP_201_CREATED)
async def share_backup(
    payload: ShareRequest,
    layout: BackupLayoutManager = Depends(get_layout),
    share_service: ShareService = Depends(get_share_service),
    diagnostics: DiagnosticLogger = Depends(get_diagnostics),
) -> dict[str, Any]:
    try:
        backup_dir = layout.find(payload.backup_id)
        bundle = await asyncio.to_thread(share_service.create_share_bundle, backup_dir)
    except BackupError as exc:
        raise_backup_error(exc, diagnostics=diagnostics)
    except OSError as exc:
        raise_filesystem_error(
            exc,
            message="Failed to create share bundle.",
            details={"backupId": payload.backup_id},
            diagnostics=diagnostics,
        )
    return ShareResponse(
        backup_id=payload.backup_id,
        bundle_path=str(bundle.path),
        size_bytes=bundle.size_bytes,
        entry_count=bundle.entry_count,
        expires_at=bundle.expires_at,
    ).to_payload()


__all__ = ["router"]
