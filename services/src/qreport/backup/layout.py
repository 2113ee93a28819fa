"""Multi-projection on-disk layout for backup snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .errors import BackupError, CorruptError, NotFoundError
from .models.snapshot import (
    BackupInfo,
    BackupSnapshot,
    BackupSortOrder,
    DatabaseBackup,
    PhotoManifest,
    SettingsBackup,
    SignatureManifest,
)
from .serializer import Serializer
from .storage import FileStore

LOGGER = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
DATABASE_FILE = "database.json"
SETTINGS_FILE = "settings.json"
FULL_BACKUP_FILE = "qreport_backup_full.json"
LEGACY_BACKUP_FILE = "backup.json"
INFO_FILE = "INFO.txt"
PHOTOS_ARCHIVE = "photos.zip"
SIGNATURES_ARCHIVE = "signatures.zip"

CANONICAL_ORDER = (FULL_BACKUP_FILE, DATABASE_FILE, LEGACY_BACKUP_FILE)
# Partial views of a snapshot; they carry the full snapshot's checksum.
PROJECTION_FILES = frozenset({METADATA_FILE, DATABASE_FILE, SETTINGS_FILE})
BACKUP_DIR_PREFIX = "backup_"
SHORT_ID_LENGTH = 8


@dataclass
class DeleteResult:
    deleted_count: int = 0
    failures: list[str] = field(default_factory=list)


def _metadata_projection(snapshot: BackupSnapshot) -> BackupSnapshot:
    return snapshot.model_copy(
        update={
            "database": DatabaseBackup.empty(),
            "settings": SettingsBackup(),
            "photo_manifest": PhotoManifest(),
            "signature_manifest": SignatureManifest(),
        }
    )


def _database_projection(snapshot: BackupSnapshot) -> BackupSnapshot:
    return snapshot.model_copy(
        update={
            "settings": SettingsBackup(),
            "photo_manifest": PhotoManifest(),
            "signature_manifest": SignatureManifest(),
        }
    )


def _settings_projection(snapshot: BackupSnapshot) -> BackupSnapshot:
    return snapshot.model_copy(
        update={
            "database": DatabaseBackup.empty(),
            "photo_manifest": PhotoManifest(),
            "signature_manifest": SignatureManifest(),
        }
    )


def is_projection(path: Path) -> bool:
    return Path(path).name in PROJECTION_FILES


def render_info(snapshot: BackupSnapshot) -> str:
    metadata = snapshot.metadata
    lines = [
        "QREPORT BACKUP",
        "==============",
        f"ID: {metadata.id}",
        f"Created: {metadata.timestamp.isoformat()}",
        f"App version: {metadata.app_version}",
        f"Records: {snapshot.database.total_record_count()}",
        f"Photos: {snapshot.photo_manifest.total_photos}",
        f"Signatures: {snapshot.signature_manifest.total_signatures}",
    ]
    if metadata.description:
        lines.append(f"Description: {metadata.description}")
    return "\n".join(lines) + "\n"


class BackupLayoutManager:
    """Save, load, list and delete structured backup directories.

    A backup directory holds the full snapshot plus three partial projections
    so tooling can read metadata or settings without parsing the whole
    database. ``qreport_backup_full.json`` is the canonical file.
    """

    def __init__(self, store: FileStore, serializer: Serializer, backups_root: Path) -> None:
        self._store = store
        self._serializer = serializer
        self.backups_root = Path(backups_root)

    def generate_backup_path(self, backup_id: str, now: datetime | None = None) -> Path:
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
        return self.backups_root / f"{BACKUP_DIR_PREFIX}{stamp}_{backup_id[:SHORT_ID_LENGTH]}"

    def save(self, snapshot: BackupSnapshot, destination_dir: Path) -> Path:
        destination = Path(destination_dir)
        projections = (
            (METADATA_FILE, _metadata_projection(snapshot)),
            (DATABASE_FILE, _database_projection(snapshot)),
            (SETTINGS_FILE, _settings_projection(snapshot)),
            (FULL_BACKUP_FILE, snapshot),
        )
        for file_name, projection in projections:
            self._store.write_text(destination / file_name, self._serializer.dumps(projection))
        self._store.write_text(destination / INFO_FILE, render_info(snapshot))
        LOGGER.info("Saved backup %s to %s", snapshot.metadata.id, destination)
        return destination / FULL_BACKUP_FILE

    def resolve_canonical(self, directory: Path) -> Path:
        """Return the file a backup directory should be loaded from."""

        for name in CANONICAL_ORDER:
            candidate = Path(directory) / name
            if self._store.exists(candidate) and not self._store.is_dir(candidate):
                return candidate
        json_files = [
            path for path in self._store.list_dir(directory) if path.suffix == ".json" and not self._store.is_dir(path)
        ]
        if json_files:
            return json_files[0]
        raise NotFoundError(f"No backup file found in {directory}", details={"path": str(directory)})

    def load(self, path: Path) -> BackupSnapshot:
        target = Path(path)
        if not self._store.exists(target):
            raise NotFoundError(f"Backup not found: {target}", details={"path": str(target)})
        if self._store.is_dir(target):
            target = self.resolve_canonical(target)
        try:
            return self._serializer.loads(self._store.read_text(target))
        except CorruptError as exc:
            raise CorruptError(f"Backup file is corrupt: {target.name}", details={"path": str(target), **exc.details}) from exc

    def list(self, sort_order: BackupSortOrder = BackupSortOrder.DATE_DESC) -> list[BackupInfo]:
        infos: list[BackupInfo] = []
        for candidate in self._store.list_dir(self.backups_root):
            is_dir = self._store.is_dir(candidate)
            if not is_dir and candidate.suffix != ".json":
                continue
            try:
                file_path = self.resolve_canonical(candidate) if is_dir else candidate
                snapshot = self._serializer.loads(self._store.read_text(file_path))
            except BackupError as exc:
                LOGGER.warning("Skipping unreadable backup %s: %s", candidate, exc.message)
                continue
            infos.append(self._info_for(snapshot, file_path, candidate if is_dir else None))
        return _sorted(infos, sort_order)

    def find(self, backup_id: str) -> Path:
        """Return the directory of the backup whose short id matches ``backup_id``."""

        matches = self._matching_dirs(backup_id)
        if not matches:
            raise NotFoundError(f"Backup not found: {backup_id}", details={"backup_id": backup_id})
        return matches[-1]

    def delete(self, backup_id: str) -> DeleteResult:
        matches = self._matching_dirs(backup_id)
        if not matches:
            raise NotFoundError(f"Backup not found: {backup_id}", details={"backup_id": backup_id})

        result = DeleteResult()
        for directory in matches:
            try:
                self._store.remove(directory)
            except OSError as exc:
                LOGGER.error("Failed to delete backup directory %s: %s", directory, exc)
                result.failures.append(f"{directory.name}: {exc}")
                continue
            result.deleted_count += 1
        LOGGER.info("Deleted %d backup directories for %s", result.deleted_count, backup_id)
        return result

    def _matching_dirs(self, backup_id: str) -> list[Path]:
        short_id = backup_id[:SHORT_ID_LENGTH]
        if not short_id:
            return []
        return [
            path
            for path in self._store.list_dir(self.backups_root)
            if self._store.is_dir(path) and path.name.rsplit("_", 1)[-1].startswith(short_id)
        ]

    def _info_for(self, snapshot: BackupSnapshot, file_path: Path, dir_path: Path | None) -> BackupInfo:
        metadata = snapshot.metadata
        created_at = metadata.timestamp
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        total_size = metadata.total_size or self._store.size(file_path)
        return BackupInfo(
            id=metadata.id,
            created_at=created_at,
            description=metadata.description,
            total_size=total_size,
            record_count=snapshot.database.total_record_count(),
            photo_count=snapshot.photo_manifest.total_photos,
            includes_photos=snapshot.includes_photos(),
            dir_path=str(dir_path) if dir_path is not None else None,
            file_path=str(file_path),
            app_version=metadata.app_version,
        )


def _sorted(infos: list[BackupInfo], sort_order: BackupSortOrder) -> list[BackupInfo]:
    def display_name(info: BackupInfo) -> str:
        return Path(info.dir_path or info.file_path).name.lower()

    keys = {
        BackupSortOrder.DATE_ASC: (lambda info: info.created_at, False),
        BackupSortOrder.DATE_DESC: (lambda info: info.created_at, True),
        BackupSortOrder.SIZE_ASC: (lambda info: info.total_size, False),
        BackupSortOrder.SIZE_DESC: (lambda info: info.total_size, True),
        BackupSortOrder.NAME_ASC: (display_name, False),
        BackupSortOrder.NAME_DESC: (display_name, True),
    }
    key, reverse = keys[BackupSortOrder(sort_order)]
    return sorted(infos, key=key, reverse=reverse)


__all__ = [
    "BackupLayoutManager",
    "CANONICAL_ORDER",
    "DATABASE_FILE",
    "DeleteResult",
    "FULL_BACKUP_FILE",
    "INFO_FILE",
    "METADATA_FILE",
    "PHOTOS_ARCHIVE",
    "PROJECTION_FILES",
    "SETTINGS_FILE",
    "SIGNATURES_ARCHIVE",
    "is_projection",
    "render_info",
]
