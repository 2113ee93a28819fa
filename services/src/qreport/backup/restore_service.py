"""Full restore workflow: validate, import records, then payload archives."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Generator, Iterator, Mapping, Protocol

from .archive.extractor import ArchiveExtractor
from .backup_service import forward_progress
from .config import BackupSettings
from .diagnostics import DiagnosticLogger
from .errors import BackupError, CorruptError, HashMismatchError
from .integrity import validate_manifest, validate_snapshot_payload
from .layout import PHOTOS_ARCHIVE, SIGNATURES_ARCHIVE, BackupLayoutManager, is_projection
from .models.snapshot import BackupSnapshot, SettingsBackup
from .persistence import write_json_atomic
from .progress import CancellationToken, Completed, Error, ProgressEmitter, ProgressEvent
from .restore import RecordSink, RestoreOrchestrator, RestoreSelection, RestoreStrategy
from .serializer import SnapshotSerializer
from .storage import FileStore, LocalFileStore

LOGGER = logging.getLogger(__name__)


class SettingsSink(Protocol):
    def apply_settings(self, settings: SettingsBackup) -> None: ...


class JsonSettingsStore:
    """Persist restored settings as a JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def apply_settings(self, settings: SettingsBackup) -> None:
        write_json_atomic(self.path, settings.to_payload())


class RestoreService:
    """Restore a stored backup into a record sink and the payload folders.

    Records are imported first. A failing photo archive aborts the restore;
    signature and settings problems only produce warnings. Nothing applied
    before a failure is rolled back.
    """

    def __init__(
        self,
        *,
        settings: BackupSettings,
        layout: BackupLayoutManager,
        serializer: SnapshotSerializer,
        sink: RecordSink,
        diagnostics: DiagnosticLogger,
        settings_sink: SettingsSink | None = None,
        store: FileStore | None = None,
    ) -> None:
        self._settings = settings
        self._layout = layout
        self._serializer = serializer
        self._sink = sink
        self._diagnostics = diagnostics
        self._settings_sink = settings_sink
        self._store = store or LocalFileStore()

    def load_verified(self, backup_path: Path) -> tuple[BackupSnapshot, Path, list[str]]:
        """Load a backup after structural and checksum validation.

        Returns the snapshot, the directory holding its payload archives and
        any non-fatal warnings.
        """

        backup_path = Path(backup_path)
        file_path = self._layout.resolve_canonical(backup_path) if self._store.is_dir(backup_path) else backup_path
        raw = self._store.read_text(file_path)

        structure = validate_snapshot_payload(raw)
        if not structure.is_valid:
            raise CorruptError(
                f"Backup failed structural validation: {file_path.name}",
                details={"errors": structure.errors},
            )
        snapshot = self._serializer.loads(raw)

        warnings = list(structure.warnings)
        if is_projection(file_path):
            LOGGER.warning("Restoring %s from projection %s; checksum not verifiable", snapshot.metadata.id, file_path.name)
            warnings.append(f"checksum not verifiable for projection {file_path.name}")
        elif not snapshot.metadata.checksum:
            warnings.append("backup carries no checksum")
        elif not self._serializer.verify(snapshot):
            raise HashMismatchError(
                f"Backup checksum mismatch: {snapshot.metadata.id}",
                details={"backup_id": snapshot.metadata.id},
            )
        return snapshot, file_path.parent, warnings

    def restore(
        self,
        backup_path: Path,
        strategy: RestoreStrategy = RestoreStrategy.REPLACE_ALL,
        selection: RestoreSelection | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ProgressEvent]:
        backup_path = Path(backup_path)
        emitter = ProgressEmitter()

        try:
            snapshot, backup_dir, warnings = self.load_verified(backup_path)
        except BackupError as exc:
            yield self._fail(emitter, backup_path, exc.message, exc.code, exc.details)
            return

        emitter.total_count = (
            snapshot.database.total_record_count()
            + snapshot.photo_manifest.total_photos
            + snapshot.signature_manifest.total_signatures
        )
        LOGGER.info("Restoring backup %s from %s", snapshot.metadata.id, backup_dir)

        orchestrator = RestoreOrchestrator(self._sink, self._settings.restore_batch_size)
        result = yield from forward_progress(
            orchestrator.run(snapshot.database, strategy, selection, cancel), emitter, 0, "database"
        )
        if result.kind == "error":
            yield self._fail(emitter, backup_path, result.message, result.code, result.details)
            return
        warnings.extend(result.warnings)
        restored_records = result.count
        payload_bytes = 0

        photos_zip = backup_dir / PHOTOS_ARCHIVE
        if photos_zip.exists():
            outcome = yield from self._extract_photos(snapshot, photos_zip, emitter, cancel)
            if outcome.kind == "error":
                yield self._fail(emitter, backup_path, outcome.message, outcome.code, outcome.details)
                return
            warnings.extend(outcome.warnings)
            payload_bytes += outcome.total_bytes
        elif snapshot.includes_photos():
            warnings.append(f"{PHOTOS_ARCHIVE} is missing; photos not restored")

        signatures_zip = backup_dir / SIGNATURES_ARCHIVE
        if signatures_zip.exists():
            extractor = ArchiveExtractor(self._settings.archive_config("signatures"))
            expected = {item.entry_path: item.sha256 for item in snapshot.signature_manifest.signatures} or None
            outcome = yield from forward_progress(
                extractor.extract(signatures_zip, self._settings.signatures_dir, expected=expected, cancel=cancel),
                emitter,
                emitter.processed_count,
                "signatures",
            )
            if outcome.kind == "error":
                if outcome.code == "CANCELLED":
                    yield self._fail(emitter, backup_path, "Restore cancelled", "CANCELLED", outcome.details)
                    return
                LOGGER.warning("Signature restore failed: %s", outcome.message)
                warnings.append(f"signatures not restored: {outcome.message}")
            else:
                warnings.extend(outcome.warnings)
                payload_bytes += outcome.total_bytes
        elif snapshot.includes_signatures():
            warnings.append(f"{SIGNATURES_ARCHIVE} is missing; signatures not restored")

        if self._settings_sink is not None and not snapshot.settings.is_empty():
            try:
                self._settings_sink.apply_settings(snapshot.settings)
            except Exception as exc:
                LOGGER.warning("Settings restore failed: %s", exc)
                warnings.append(f"settings not restored: {exc}")

        LOGGER.info(
            "Backup %s restored: %d records, %d payload bytes, %d warnings",
            snapshot.metadata.id,
            restored_records,
            payload_bytes,
            len(warnings),
        )
        yield emitter.completed(restored_records, payload_bytes, str(backup_dir), warnings=warnings)

    def _extract_photos(
        self,
        snapshot: BackupSnapshot,
        photos_zip: Path,
        emitter: ProgressEmitter,
        cancel: CancellationToken | None,
    ) -> Generator[ProgressEvent, None, Completed | Error]:
        extractor = ArchiveExtractor(self._settings.archive_config("photos"))
        expected_entries = snapshot.photo_manifest.expected_entries()
        expected = {name: entry.content_hash for name, entry in expected_entries.items()} or None
        outcome = yield from forward_progress(
            extractor.extract(photos_zip, self._settings.photos_dir, expected=expected, cancel=cancel),
            emitter,
            emitter.processed_count,
            "photos",
        )
        if outcome.kind == "error" or not expected_entries:
            return outcome

        check = validate_manifest(
            expected_entries,
            LocalFileStore(self._settings.photos_dir),
            self._settings.validation_threshold,
            buffer_size=self._settings.buffer_size,
        )
        extra = [*check.errors, *check.warnings]
        if not extra:
            return outcome
        return replace(outcome, warnings=(*outcome.warnings, *(f"photo check: {item}" for item in extra)))

    def _fail(
        self,
        emitter: ProgressEmitter,
        backup_path: Path,
        message: str,
        code: str,
        details: Mapping[str, Any],
    ) -> Error:
        LOGGER.error("Restore of %s failed: %s", backup_path, message)
        self._diagnostics.log(
            code="RESTORE_FAILED",
            message=message,
            details={"backup_path": str(backup_path), "error_code": code},
        )
        return emitter.error(message, code=code, details=details)


__all__ = ["JsonSettingsStore", "RestoreService", "SettingsSink"]
