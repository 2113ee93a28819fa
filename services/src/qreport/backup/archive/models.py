"""Value types shared by the archive builder and extractor."""

from __future__ import annotations

import re
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

DEFAULT_BUFFER_SIZE = 8192
MB = 1024 * 1024

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class ArchiveEntry:
    """A single entry written to (or read from) a payload archive."""

    entry_path: str
    source_size: int
    content_hash: str
    compression_method: int = zipfile.ZIP_DEFLATED

    def __post_init__(self) -> None:
        if not _HEX_DIGEST.match(self.content_hash):
            raise ValueError(f"content_hash must be a lowercase sha256 hex digest: {self.content_hash!r}")
        if self.source_size < 0:
            raise ValueError("source_size must be non-negative")


@dataclass(frozen=True)
class ArchiveItem:
    """Source file plus the container path it should be stored under."""

    source_path: Path
    entry_path: str

    @classmethod
    def for_file(cls, source_path: Path, group_id: str | None = None) -> "ArchiveItem":
        source = Path(source_path)
        return cls(source_path=source, entry_path=entry_name(source.name, group_id))


@dataclass(frozen=True)
class ArchiveConfig:
    """Limits applied while building or extracting an archive."""

    buffer_size: int = DEFAULT_BUFFER_SIZE
    max_entry_size: int = 50 * MB
    max_total_size: int | None = None
    compression: int = zipfile.ZIP_DEFLATED

    def __post_init__(self) -> None:
        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        if self.max_entry_size <= 0:
            raise ValueError("max_entry_size must be positive")
        if self.max_total_size is not None and self.max_total_size <= 0:
            raise ValueError("max_total_size must be positive when set")


@dataclass(frozen=True)
class ExpectedEntry:
    """Hash and size an archive entry is expected to carry."""

    content_hash: str
    size: int | None = None


def norm_path(raw: str) -> str:
    """Normalise ``raw`` into a relative POSIX container path.

    Backslashes become forward slashes, empty and ``.`` segments are dropped,
    and any ``..`` segment or absolute prefix is rejected with ``ValueError``.
    """

    candidate = raw.replace("\\", "/")
    if candidate.startswith("/") or re.match(r"^[A-Za-z]:", candidate):
        raise ValueError(f"Archive paths must be relative: {raw!r}")
    parts = [part for part in candidate.split("/") if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise ValueError(f"Archive paths must not traverse upwards: {raw!r}")
    if not parts:
        raise ValueError("Archive path is empty")
    return str(PurePosixPath(*parts))


def entry_name(file_name: str, group_id: str | None = None) -> str:
    """Return the container path for ``file_name``, optionally grouped."""

    if group_id:
        return norm_path(f"{group_id}/{file_name}")
    return norm_path(file_name)


__all__ = [
    "ArchiveConfig",
    "ArchiveEntry",
    "ArchiveItem",
    "DEFAULT_BUFFER_SIZE",
    "ExpectedEntry",
    "MB",
    "entry_name",
    "norm_path",
]
