"""Full backup workflow: database export, payload archives and layout."""

from __future__ import annotations

import logging
import platform
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Iterator, Mapping, Protocol

from .archive.builder import ArchiveBuilder
from .archive.models import ArchiveItem, entry_name
from .config import BackupSettings
from .diagnostics import DiagnosticLogger
from .errors import BackupError
from .layout import PHOTOS_ARCHIVE, SIGNATURES_ARCHIVE, BackupLayoutManager
from .models.snapshot import (
    BackupMetadata,
    BackupSnapshot,
    BackupType,
    DatabaseBackup,
    PhotoManifest,
    SettingsBackup,
    SignatureManifest,
)
from .progress import CancellationToken, Completed, Error, ProgressEmitter, ProgressEvent
from .serializer import SnapshotSerializer

LOGGER = logging.getLogger(__name__)

THUMBNAIL_PREFIX = "thumb_"
PHOTO_MANIFEST_HEADER = "QReport Photo Archive Manifest"
SIGNATURE_MANIFEST_HEADER = "QReport Signature Archive Manifest"


class SnapshotSource(Protocol):
    """Provides the data a backup is taken from."""

    def export_database(self) -> DatabaseBackup: ...

    def export_settings(self) -> SettingsBackup: ...

    def photo_items(self, include_thumbnails: bool) -> list[ArchiveItem]: ...

    def signature_items(self) -> list[ArchiveItem]: ...


@dataclass
class DirectorySnapshotSource:
    """Snapshot source backed by in-memory records and on-disk payload folders.

    Photos live under ``photos_dir/<check_item_id>/<file>`` and signatures
    under ``signatures_dir/<intervention_id>/<file>``; the first path segment
    becomes the entry group inside the archive.
    """

    photos_dir: Path
    signatures_dir: Path
    database: DatabaseBackup = field(default_factory=DatabaseBackup.empty)
    settings: SettingsBackup = field(default_factory=SettingsBackup)

    def export_database(self) -> DatabaseBackup:
        return self.database.model_copy(update={"exported_at": datetime.now(timezone.utc)})

    def export_settings(self) -> SettingsBackup:
        return self.settings

    def photo_items(self, include_thumbnails: bool) -> list[ArchiveItem]:
        return [
            item
            for item in _grouped_items(self.photos_dir)
            if include_thumbnails or not item.source_path.name.startswith(THUMBNAIL_PREFIX)
        ]

    def signature_items(self) -> list[ArchiveItem]:
        return _grouped_items(self.signatures_dir)


def _grouped_items(root: Path) -> list[ArchiveItem]:
    if not root.is_dir():
        return []
    items: list[ArchiveItem] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        relative = path.relative_to(root)
        group = "/".join(relative.parts[:-1]) or None
        items.append(ArchiveItem(source_path=path, entry_path=entry_name(relative.name, group)))
    return items


def _device_info() -> dict[str, str]:
    return {
        "system": platform.system(),
        "release": platform.release(),
        "machine": platform.machine(),
        "python": platform.python_version(),
    }


def forward_progress(
    events: Iterator[ProgressEvent],
    emitter: ProgressEmitter,
    offset: int,
    label: str,
) -> Generator[ProgressEvent, None, Completed | Error]:
    """Re-emit inner progress on ``emitter`` shifted by ``offset``.

    The inner terminal event is returned to the caller instead of being
    yielded, so the outer operation still emits exactly one terminal event.
    """

    for event in events:
        if event.kind == "in_progress":
            yield emitter.progress(offset + event.processed_count, f"{label}: {event.current_item}")
            continue
        return event
    return Error(message=f"{label} ended without a result", code="INTERNAL")


class BackupService:
    """Create complete backups made of JSON projections and payload archives."""

    def __init__(
        self,
        *,
        settings: BackupSettings,
        layout: BackupLayoutManager,
        serializer: SnapshotSerializer,
        diagnostics: DiagnosticLogger,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._layout = layout
        self._serializer = serializer
        self._diagnostics = diagnostics
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create_backup(
        self,
        source: SnapshotSource,
        description: str | None = None,
        include_photos: bool = True,
        include_thumbnails: bool = False,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ProgressEvent]:
        backup_id = str(uuid.uuid4())
        now = self._clock()
        backup_dir = self._layout.generate_backup_path(backup_id, now)
        emitter = ProgressEmitter()
        warnings: list[str] = []

        try:
            photo_items = source.photo_items(include_thumbnails) if include_photos else []
            signature_items = source.signature_items()
            emitter.total_count = 2 + len(photo_items) + len(signature_items)

            yield emitter.progress(0, "database")
            database = source.export_database()
            settings = source.export_settings()
        except BackupError as exc:
            yield self._abort(emitter, backup_dir, exc.message, exc.code, exc.details)
            return
        except Exception as exc:
            LOGGER.exception("Database export failed for backup %s", backup_id)
            yield self._abort(emitter, backup_dir, f"Database export failed: {exc}", "IO_FAILURE", {})
            return

        photo_manifest = PhotoManifest()
        offset = 1
        if photo_items:
            if cancel is not None and cancel.cancelled:
                yield self._abort(emitter, backup_dir, "Backup cancelled", "CANCELLED", {})
                return
            builder = ArchiveBuilder(self._settings.archive_config("photos"), manifest_header=PHOTO_MANIFEST_HEADER)
            result = yield from forward_progress(
                builder.build(photo_items, backup_dir / PHOTOS_ARCHIVE, cancel), emitter, offset, "photos"
            )
            if result.kind == "error":
                message = "Backup cancelled" if result.code == "CANCELLED" else f"Photo archive failed: {result.message}"
                yield self._abort(emitter, backup_dir, message, result.code, result.details)
                return
            warnings.extend(result.warnings)
            photo_manifest = PhotoManifest.from_entries(result.entries, includes_thumbnails=include_thumbnails)
            offset += len(photo_items)

        signature_manifest = SignatureManifest()
        if signature_items:
            if cancel is not None and cancel.cancelled:
                yield self._abort(emitter, backup_dir, "Backup cancelled", "CANCELLED", {})
                return
            builder = ArchiveBuilder(
                self._settings.archive_config("signatures"), manifest_header=SIGNATURE_MANIFEST_HEADER
            )
            result = yield from forward_progress(
                builder.build(signature_items, backup_dir / SIGNATURES_ARCHIVE, cancel), emitter, offset, "signatures"
            )
            if result.kind == "error":
                if result.code == "CANCELLED":
                    yield self._abort(emitter, backup_dir, "Backup cancelled", "CANCELLED", {})
                    return
                LOGGER.warning("Signature archive failed for backup %s: %s", backup_id, result.message)
                warnings.append(f"signature archive not created: {result.message}")
            else:
                warnings.extend(result.warnings)
                signature_manifest = SignatureManifest.from_entries(result.entries)
            offset += len(signature_items)

        yield emitter.progress(offset, "metadata")
        snapshot = BackupSnapshot(
            metadata=BackupMetadata(
                id=backup_id,
                timestamp=now,
                app_version=self._settings.app_version,
                device_info=_device_info(),
                backup_type=BackupType.FULL if include_photos else BackupType.DATABASE_ONLY,
                description=description,
            ),
            database=database,
            settings=settings,
            photo_manifest=photo_manifest,
            signature_manifest=signature_manifest,
        )
        sealed = self._serializer.seal(snapshot)

        try:
            full_path = self._layout.save(sealed, backup_dir)
        except BackupError as exc:
            yield self._abort(emitter, backup_dir, exc.message, exc.code, exc.details)
            return

        LOGGER.info(
            "Backup %s created at %s (%d records, %d photos, %d signatures)",
            backup_id,
            backup_dir,
            database.total_record_count(),
            photo_manifest.total_photos,
            signature_manifest.total_signatures,
        )
        yield emitter.completed(
            database.total_record_count(),
            sealed.metadata.total_size,
            str(full_path),
            warnings=warnings,
        )

    def _abort(
        self,
        emitter: ProgressEmitter,
        backup_dir: Path,
        message: str,
        code: str,
        details: Mapping[str, Any],
    ) -> Error:
        if backup_dir.exists():
            shutil.rmtree(backup_dir, ignore_errors=True)
        LOGGER.error("Backup aborted: %s", message)
        self._diagnostics.log(
            code="BACKUP_FAILED",
            message=message,
            details={"backup_dir": str(backup_dir), "error_code": code},
        )
        return emitter.error(message, code=code, details={"backup_dir": str(backup_dir), **dict(details)})


__all__ = [
    "BackupService",
    "DirectorySnapshotSource",
    "SnapshotSource",
    "forward_progress",
]
