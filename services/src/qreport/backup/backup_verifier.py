"""Verification of stored backups: snapshot structure, checksum and archives."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from .errors import BackupError
from .integrity import DEFAULT_THRESHOLD, ValidationResult, validate_snapshot_payload, verify_archive
from .layout import PHOTOS_ARCHIVE, SIGNATURES_ARCHIVE, BackupLayoutManager, is_projection
from .serializer import SnapshotSerializer
from .storage import FileStore

LOGGER = logging.getLogger(__name__)

UTC = timezone.utc

BackupStatus = Literal["ok", "warning", "error"]


def _isoformat(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


@dataclass
class BackupVerification:
    """Outcome of verifying one backup directory."""

    path: str
    backup_id: str | None = None
    status: BackupStatus = "ok"
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    checked_at: str = field(default_factory=lambda: _isoformat(datetime.now(UTC)))

    def absorb(self, result: ValidationResult, prefix: str) -> None:
        self.errors.extend(f"{prefix}: {message}" for message in result.errors)
        self.warnings.extend(f"{prefix}: {message}" for message in result.warnings)

    def finalise(self) -> "BackupVerification":
        if self.errors:
            self.status = "error"
        elif self.warnings:
            self.status = "warning"
        else:
            self.status = "ok"
        return self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def verify_backup(
    backup_dir: Path,
    *,
    layout: BackupLayoutManager,
    serializer: SnapshotSerializer,
    store: FileStore,
    threshold: float = DEFAULT_THRESHOLD,
) -> BackupVerification:
    """Verify a single backup directory without modifying it."""

    report = BackupVerification(path=str(backup_dir))
    try:
        file_path = layout.resolve_canonical(backup_dir)
        raw = store.read_text(file_path)
    except BackupError as exc:
        report.errors.append(exc.message)
        return report.finalise()

    report.absorb(validate_snapshot_payload(raw), "snapshot")
    if report.errors:
        return report.finalise()

    try:
        snapshot = serializer.loads(raw)
    except BackupError as exc:
        report.errors.append(f"snapshot: {exc.message}")
        return report.finalise()

    report.backup_id = snapshot.metadata.id
    if is_projection(file_path):
        report.warnings.append(f"snapshot: checksum not verifiable for projection {file_path.name}")
    elif not snapshot.metadata.checksum:
        report.warnings.append("snapshot: no checksum recorded")
    elif not serializer.verify(snapshot):
        report.errors.append("snapshot: checksum mismatch")

    for archive_name, expected in (
        (PHOTOS_ARCHIVE, snapshot.includes_photos()),
        (SIGNATURES_ARCHIVE, snapshot.includes_signatures()),
    ):
        archive_path = Path(backup_dir) / archive_name
        if store.exists(archive_path):
            report.absorb(verify_archive(archive_path, threshold), archive_name)
        elif expected:
            report.errors.append(f"{archive_name}: missing")

    return report.finalise()


def run_verification(
    layout: BackupLayoutManager,
    serializer: SnapshotSerializer,
    store: FileStore,
    *,
    threshold: float = DEFAULT_THRESHOLD,
) -> dict[str, Any]:
    """Verify every backup directory under the layout's backups root."""

    started = datetime.now(UTC)
    results: list[BackupVerification] = []
    for candidate in store.list_dir(layout.backups_root):
        if not store.is_dir(candidate):
            continue
        try:
            results.append(
                verify_backup(candidate, layout=layout, serializer=serializer, store=store, threshold=threshold)
            )
        except OSError as exc:
            LOGGER.exception("Verification failed for %s", candidate)
            results.append(BackupVerification(path=str(candidate), errors=[str(exc)]).finalise())

    summary = {
        "ok": sum(1 for item in results if item.status == "ok"),
        "warning": sum(1 for item in results if item.status == "warning"),
        "error": sum(1 for item in results if item.status == "error"),
    }
    LOGGER.info("Verified %d backups: %s", len(results), summary)
    return {
        "started_at": _isoformat(started),
        "completed_at": _isoformat(datetime.now(UTC)),
        "checked": len(results),
        "summary": summary,
        "backups": [item.to_dict() for item in results],
    }


__all__ = ["BackupVerification", "run_verification", "verify_backup"]
