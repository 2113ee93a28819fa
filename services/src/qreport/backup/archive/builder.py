"""Streaming builder for hashed payload archives."""

from __future__ import annotations

import hashlib
import logging
import time
import zipfile
from pathlib import Path
from typing import IO, Iterable, Iterator

from ..errors import BackupError, ConflictError, IOFailureError, OperationCancelledError, SizeExceededError
from ..persistence import exclusive_path, replace_file, temp_sibling
from ..progress import CancellationToken, ProgressEmitter, ProgressEvent
from .manifest import DEFAULT_HEADER, MANIFEST_NAME, Manifest
from .models import ArchiveConfig, ArchiveEntry, ArchiveItem

LOGGER = logging.getLogger(__name__)

_ZIP64_THRESHOLD = 0x7FFFFFFF


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("Unable to remove temporary archive %s: %s", path, exc)


def _zip_info(entry_path: str, source: Path, compression: int) -> zipfile.ZipInfo:
    try:
        mtime = source.stat().st_mtime
    except OSError:
        mtime = time.time()
    stamp = time.localtime(max(mtime, 315532800))[:6]
    info = zipfile.ZipInfo(entry_path, date_time=stamp)
    info.compress_type = compression
    return info


class _BuildState:
    __slots__ = ("entries", "warnings", "total_bytes")

    def __init__(self) -> None:
        self.entries: list[ArchiveEntry] = []
        self.warnings: list[str] = []
        self.total_bytes = 0


class ArchiveBuilder:
    """Write ordered items into a zip container with a trailing manifest.

    Each accepted source is read exactly once; every chunk is fed to the
    container entry and to a running SHA-256 so the recorded hash always
    describes the stored bytes. Per-item problems become warnings on the
    ``Completed`` event; container failures abort the whole build.
    """

    def __init__(self, config: ArchiveConfig | None = None, *, manifest_header: str = DEFAULT_HEADER) -> None:
        self._config = config or ArchiveConfig()
        self._manifest_header = manifest_header

    @property
    def config(self) -> ArchiveConfig:
        return self._config

    def build(
        self,
        items: Iterable[ArchiveItem],
        output_path: Path,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ProgressEvent]:
        pending = list(items)
        output = Path(output_path)
        emitter = ProgressEmitter(total_count=len(pending))

        if not pending:
            LOGGER.info("No items to archive for %s", output)
            yield emitter.completed(0, 0, str(output))
            return

        try:
            with exclusive_path(output):
                yield from self._build_locked(pending, output, emitter, cancel)
        except ConflictError as exc:
            LOGGER.warning("Archive build rejected for %s: %s", output, exc.message)
            yield emitter.error(exc.message, code=exc.code, details=exc.details)

    def _build_locked(
        self,
        items: list[ArchiveItem],
        output: Path,
        emitter: ProgressEmitter,
        cancel: CancellationToken | None,
    ) -> Iterator[ProgressEvent]:
        temp_path = temp_sibling(output)
        state = _BuildState()
        failure: BackupError | None = None

        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            yield from self._write_archive(items, temp_path, emitter, cancel, state)
            replace_file(temp_path, output)
        except GeneratorExit:
            _discard(temp_path)
            raise
        except BackupError as exc:
            failure = exc
        except (OSError, zipfile.LargeZipFile) as exc:
            failure = IOFailureError(
                f"Failed to write archive {output.name}: {exc}",
                details={"path": str(output)},
            )

        if failure is not None:
            _discard(temp_path)
            LOGGER.error("Archive build failed for %s: %s", output, failure.message)
            yield emitter.error(failure.message, code=failure.code, details=failure.details)
            return

        LOGGER.info(
            "Archive %s created with %d entries (%d bytes, %d warnings)",
            output,
            len(state.entries),
            state.total_bytes,
            len(state.warnings),
        )
        yield emitter.completed(
            len(state.entries),
            state.total_bytes,
            str(output),
            warnings=state.warnings,
            entries=state.entries,
        )

    def _write_archive(
        self,
        items: list[ArchiveItem],
        temp_path: Path,
        emitter: ProgressEmitter,
        cancel: CancellationToken | None,
        state: _BuildState,
    ) -> Iterator[ProgressEvent]:
        config = self._config
        seen: set[str] = set()

        with zipfile.ZipFile(temp_path, "w", compression=config.compression, allowZip64=True) as archive:
            for index, item in enumerate(items):
                yield emitter.progress(index, item.entry_path)
                if cancel is not None and cancel.cancelled:
                    raise OperationCancelledError(
                        "Archive build cancelled",
                        details={"processed": index, "total": len(items)},
                    )

                try:
                    skip_reason = self._screen(item, seen)
                except SizeExceededError as exc:
                    skip_reason = exc.message
                if skip_reason is not None:
                    LOGGER.warning("Skipping %s: %s", item.entry_path, skip_reason)
                    state.warnings.append(f"{item.entry_path}: {skip_reason}")
                    continue

                try:
                    handle = item.source_path.open("rb")
                except OSError as exc:
                    LOGGER.warning("Skipping unreadable source %s: %s", item.source_path, exc)
                    state.warnings.append(f"{item.entry_path}: unreadable ({exc})")
                    continue

                with handle:
                    entry = self._write_entry(archive, item, handle)
                seen.add(entry.entry_path)
                state.entries.append(entry)
                state.total_bytes += entry.source_size

                if config.max_total_size is not None and state.total_bytes > config.max_total_size:
                    message = (
                        f"archive size limit reached after {len(state.entries)} entries; "
                        f"{len(items) - index - 1} items not archived"
                    )
                    LOGGER.warning("%s: %s", temp_path.name, message)
                    state.warnings.append(message)
                    break

            manifest = Manifest.from_entries(state.entries)
            archive.writestr(MANIFEST_NAME, manifest.render(self._manifest_header))

    def _screen(self, item: ArchiveItem, seen: set[str]) -> str | None:
        """Return why ``item`` must be skipped, or ``None`` to accept it.

        Oversized sources raise ``SizeExceededError``, a soft limit the caller
        records as a warning.
        """

        if item.entry_path == MANIFEST_NAME:
            return "reserved entry name"
        if item.entry_path in seen:
            return "duplicate entry"
        try:
            size = item.source_path.stat().st_size
        except OSError:
            return "source missing"
        if not item.source_path.is_file():
            return "not a regular file"
        if size == 0:
            return "empty file"
        if size > self._config.max_entry_size:
            raise SizeExceededError(
                f"{size} bytes exceeds entry limit of {self._config.max_entry_size}",
                details={"size": size, "limit": self._config.max_entry_size},
            )
        return None

    def _write_entry(self, archive: zipfile.ZipFile, item: ArchiveItem, handle: IO[bytes]) -> ArchiveEntry:
        config = self._config
        info = _zip_info(item.entry_path, item.source_path, config.compression)
        digest = hashlib.sha256()
        written = 0
        with archive.open(info, "w", force_zip64=item.source_path.stat().st_size > _ZIP64_THRESHOLD) as target:
            while True:
                try:
                    chunk = handle.read(config.buffer_size)
                except OSError as exc:
                    raise IOFailureError(
                        f"Failed reading {item.source_path} after its entry was opened",
                        details={"entry": item.entry_path, "reason": str(exc)},
                    ) from exc
                if not chunk:
                    break
                target.write(chunk)
                digest.update(chunk)
                written += len(chunk)
        return ArchiveEntry(
            entry_path=item.entry_path,
            source_size=written,
            content_hash=digest.hexdigest(),
            compression_method=config.compression,
        )


__all__ = ["ArchiveBuilder"]
