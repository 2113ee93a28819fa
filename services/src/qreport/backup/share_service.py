"""Zip bundles of a backup directory for sharing, deleted after a delay."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .archive.builder import ArchiveBuilder
from .archive.models import ArchiveConfig, ArchiveItem, norm_path
from .config import BackupSettings
from .errors import NotFoundError, error_for_code
from .progress import final_event
from .scheduler import CleanupScheduler

LOGGER = logging.getLogger(__name__)

SHARE_MANIFEST_HEADER = "QReport Backup Share Manifest"


@dataclass(frozen=True)
class ShareBundle:
    path: Path
    size_bytes: int
    entry_count: int
    expires_at: datetime
    cleanup_job_id: str


class ShareService:
    """Package a backup directory into a single shareable archive."""

    def __init__(self, *, settings: BackupSettings, cleanup: CleanupScheduler) -> None:
        self._settings = settings
        self._cleanup = cleanup

    def create_share_bundle(self, backup_dir: Path) -> ShareBundle:
        backup_dir = Path(backup_dir)
        if not backup_dir.is_dir():
            raise NotFoundError(f"Backup directory not found: {backup_dir}", details={"path": str(backup_dir)})

        items = [
            ArchiveItem(source_path=path, entry_path=norm_path(f"{backup_dir.name}/{path.relative_to(backup_dir).as_posix()}"))
            for path in sorted(backup_dir.rglob("*"))
            if path.is_file()
        ]
        if not items:
            raise NotFoundError(f"Backup directory is empty: {backup_dir}", details={"path": str(backup_dir)})

        bundle_path = self._settings.share_dir / f"{backup_dir.name}.zip"
        config = ArchiveConfig(
            buffer_size=self._settings.buffer_size,
            max_entry_size=max(item.source_path.stat().st_size for item in items) or 1,
        )
        result = final_event(ArchiveBuilder(config, manifest_header=SHARE_MANIFEST_HEADER).build(items, bundle_path))
        if result.kind == "error":
            raise error_for_code(result.code, result.message, details=result.details)

        delay = self._settings.share_cleanup_delay_seconds
        job_id = self._cleanup.schedule_deletion(bundle_path, delay)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
        LOGGER.info("Share bundle %s created with %d entries", bundle_path, result.count)
        return ShareBundle(
            path=bundle_path,
            size_bytes=bundle_path.stat().st_size,
            entry_count=result.count,
            expires_at=expires_at,
            cleanup_job_id=job_id,
        )


__all__ = ["ShareBundle", "ShareService"]
