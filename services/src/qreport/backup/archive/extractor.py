"""Streaming extraction of payload archives with per-entry hash checks."""

from __future__ import annotations

import hashlib
import logging
import zipfile
from pathlib import Path
from typing import Iterator, Mapping

from ..errors import BackupError, CorruptError, IOFailureError, NotFoundError, OperationCancelledError
from ..progress import CancellationToken, ProgressEmitter, ProgressEvent
from .manifest import MANIFEST_NAME, Manifest
from .models import ArchiveConfig, ArchiveEntry

LOGGER = logging.getLogger(__name__)


def _counted(info: zipfile.ZipInfo) -> bool:
    return not info.is_dir() and info.filename != MANIFEST_NAME


def _resolve_target(dest_root: Path, entry_path: str) -> Path | None:
    """Return the on-disk target for ``entry_path`` or ``None`` if it escapes."""

    root = dest_root.resolve()
    target = (root / entry_path).resolve()
    if target == root or root not in target.parents:
        return None
    return target


class ArchiveExtractor:
    """Extract archives produced by :class:`ArchiveBuilder`."""

    def __init__(self, config: ArchiveConfig | None = None) -> None:
        self._config = config or ArchiveConfig()

    def extract(
        self,
        archive_path: Path,
        dest_root: Path,
        expected: Mapping[str, str] | Manifest | None = None,
        verify: bool = True,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ProgressEvent]:
        archive_path = Path(archive_path)
        dest_root = Path(dest_root)
        emitter = ProgressEmitter()

        if not archive_path.exists():
            yield emitter.error(
                f"Archive not found: {archive_path}",
                code=NotFoundError.code,
                details={"path": str(archive_path)},
            )
            return

        try:
            archive = zipfile.ZipFile(archive_path)
        except (zipfile.BadZipFile, OSError) as exc:
            LOGGER.error("Unreadable archive %s: %s", archive_path, exc)
            yield emitter.error(
                f"Archive is not a readable zip container: {archive_path.name}",
                code=CorruptError.code,
                details={"path": str(archive_path), "reason": str(exc)},
            )
            return

        with archive:
            # First pass reads only the central directory.
            members = [info for info in archive.infolist() if _counted(info)]
            emitter.total_count = len(members)
            if not members:
                yield emitter.completed(0, 0, str(dest_root))
                return

            failure: BackupError | None = None
            warnings: list[str] = []
            entries: list[ArchiveEntry] = []
            total_bytes = 0
            try:
                dest_root.mkdir(parents=True, exist_ok=True)
                reference = self._reference_hashes(archive, dest_root, expected, verify, warnings)
                for index, info in enumerate(members):
                    yield emitter.progress(index, info.filename)
                    if cancel is not None and cancel.cancelled:
                        raise OperationCancelledError(
                            "Archive extraction cancelled",
                            details={"processed": index, "total": len(members)},
                        )
                    entry = self._extract_member(archive, info, dest_root, warnings)
                    if entry is None:
                        continue
                    entries.append(entry)
                    total_bytes += entry.source_size
                    if reference is not None:
                        digest = reference.get(entry.entry_path)
                        if digest is None:
                            warnings.append(f"unlisted: {entry.entry_path}")
                        elif digest != entry.content_hash:
                            LOGGER.warning("Hash mismatch for %s in %s", entry.entry_path, archive_path)
                            warnings.append(f"invalid hash: {entry.entry_path}")
                if reference is not None:
                    extracted = {entry.entry_path for entry in entries}
                    warnings.extend(f"missing: {name}" for name in reference if name not in extracted)
            except BackupError as exc:
                failure = exc
            except (zipfile.BadZipFile, EOFError, zipfile.LargeZipFile) as exc:
                failure = CorruptError(
                    f"Archive data is corrupt: {exc}",
                    details={"path": str(archive_path)},
                )
            except OSError as exc:
                failure = IOFailureError(
                    f"Failed to read archive {archive_path.name}: {exc}",
                    details={"path": str(archive_path)},
                )

        if failure is not None:
            LOGGER.error("Extraction of %s failed: %s", archive_path, failure.message)
            yield emitter.error(failure.message, code=failure.code, details=failure.details)
            return

        LOGGER.info("Extracted %d entries from %s into %s", len(entries), archive_path, dest_root)
        yield emitter.completed(
            len(entries),
            total_bytes,
            str(dest_root),
            warnings=warnings,
            entries=entries,
        )

    def _reference_hashes(
        self,
        archive: zipfile.ZipFile,
        dest_root: Path,
        expected: Mapping[str, str] | Manifest | None,
        verify: bool,
        warnings: list[str],
    ) -> Mapping[str, str] | None:
        """Materialise the embedded manifest and pick the hashes to check against."""

        embedded: Manifest | None = None
        if MANIFEST_NAME in archive.namelist():
            payload = archive.read(MANIFEST_NAME)
            target = _resolve_target(dest_root, MANIFEST_NAME)
            if target is not None:
                try:
                    target.write_bytes(payload)
                except OSError as exc:
                    warnings.append(f"{MANIFEST_NAME}: not written ({exc})")
            embedded = Manifest.parse(payload.decode("utf-8", errors="replace"))

        if not verify:
            return None
        if expected is not None:
            return expected.hashes if isinstance(expected, Manifest) else expected
        if embedded is None:
            warnings.append("archive has no manifest; hashes not verified")
            return None
        return embedded.hashes

    def _extract_member(
        self,
        archive: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        dest_root: Path,
        warnings: list[str],
    ) -> ArchiveEntry | None:
        target = _resolve_target(dest_root, info.filename)
        if target is None:
            LOGGER.warning("Skipping entry outside destination: %s", info.filename)
            warnings.append(f"{info.filename}: path escapes destination")
            return None

        digest = hashlib.sha256()
        written = 0
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            sink = target.open("wb")
        except OSError as exc:
            LOGGER.warning("Unable to write %s: %s", target, exc)
            warnings.append(f"{info.filename}: not written ({exc})")
            return None

        with sink, archive.open(info) as source:
            for chunk in iter(lambda: source.read(self._config.buffer_size), b""):
                sink.write(chunk)
                digest.update(chunk)
                written += len(chunk)

        return ArchiveEntry(
            entry_path=info.filename,
            source_size=written,
            content_hash=digest.hexdigest(),
            compression_method=info.compress_type,
        )


__all__ = ["ArchiveExtractor"]
