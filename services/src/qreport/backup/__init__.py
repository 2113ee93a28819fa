"""QReport backup and archive integrity engine."""

from __future__ import annotations

from .archive import ArchiveBuilder, ArchiveConfig, ArchiveEntry, ArchiveExtractor, ArchiveItem, Manifest
from .config import BackupSettings
from .errors import BackupError
from .integrity import ValidationResult, validate_manifest, validate_snapshot_payload, verify_archive
from .layout import BackupLayoutManager
from .progress import CancellationToken, Completed, Error, InProgress, ProgressEvent
from .restore import RestoreOrchestrator, RestoreSelection, RestoreStrategy

__all__ = [
    "ArchiveBuilder",
    "ArchiveConfig",
    "ArchiveEntry",
    "ArchiveExtractor",
    "ArchiveItem",
    "BackupError",
    "BackupLayoutManager",
    "BackupSettings",
    "CancellationToken",
    "Completed",
    "Error",
    "InProgress",
    "Manifest",
    "ProgressEvent",
    "RestoreOrchestrator",
    "RestoreSelection",
    "RestoreStrategy",
    "ValidationResult",
    "validate_manifest",
    "validate_snapshot_payload",
    "verify_archive",
]
