"""Pydantic models for snapshots and service IO."""

from .api import DeleteResponse, ShareRequest, ShareResponse
from .errors import ErrorResponse
from .snapshot import (
    TABLE_ORDER,
    ArchivedFile,
    BackupInfo,
    BackupMetadata,
    BackupSnapshot,
    BackupSortOrder,
    BackupType,
    DatabaseBackup,
    PhotoManifest,
    SettingsBackup,
    SignatureManifest,
)

__all__ = [
    "ArchivedFile",
    "BackupInfo",
    "BackupMetadata",
    "BackupSnapshot",
    "BackupSortOrder",
    "BackupType",
    "DatabaseBackup",
    "DeleteResponse",
    "ErrorResponse",
    "PhotoManifest",
    "SettingsBackup",
    "ShareRequest",
    "ShareResponse",
    "SignatureManifest",
    "TABLE_ORDER",
]
