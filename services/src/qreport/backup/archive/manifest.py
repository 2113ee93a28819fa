"""Plain-text manifest stored as the last entry of every payload archive."""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from ..errors import CorruptError, NotFoundError
from .models import ArchiveEntry

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "MANIFEST.txt"
DEFAULT_HEADER = "QReport Archive Manifest"
FORMAT_LINE = "Format: filepath=sha256hash"


@dataclass
class Manifest:
    """Ordered ``entry_path -> content_hash`` mapping."""

    hashes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_entries(cls, entries: Iterable[ArchiveEntry]) -> "Manifest":
        return cls({entry.entry_path: entry.content_hash for entry in entries})

    def __len__(self) -> int:
        return len(self.hashes)

    def __contains__(self, entry_path: object) -> bool:
        return entry_path in self.hashes

    def __iter__(self) -> Iterator[str]:
        return iter(self.hashes)

    def get(self, entry_path: str) -> str | None:
        return self.hashes.get(entry_path)

    def render(self, header: str = DEFAULT_HEADER, *, generated_at: datetime | None = None) -> str:
        """Serialise the manifest with its comment header."""

        stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
        lines = [f"# {header}", f"# Generated: {stamp}", f"# {FORMAT_LINE}", ""]
        lines.extend(f"{path}={digest}" for path, digest in self.hashes.items())
        return "\n".join(lines) + "\n"

    @classmethod
    def parse(cls, text: str) -> "Manifest":
        """Parse manifest text; comment, blank and malformed lines are ignored."""

        hashes: dict[str, str] = {}
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            path, sep, digest = line.rpartition("=")
            if not sep or not path:
                LOGGER.debug("Ignoring malformed manifest line: %s", line)
                continue
            hashes[path.strip()] = digest.strip().lower()
        return cls(hashes)


def read_manifest(archive_path: Path) -> Manifest | None:
    """Return the manifest embedded in ``archive_path``, or ``None`` if absent."""

    if not archive_path.exists():
        raise NotFoundError(f"Archive not found: {archive_path}", details={"path": str(archive_path)})
    try:
        with zipfile.ZipFile(archive_path) as archive:
            try:
                payload = archive.read(MANIFEST_NAME)
            except KeyError:
                return None
    except (zipfile.BadZipFile, OSError) as exc:
        raise CorruptError(
            f"Unable to read archive manifest: {archive_path}",
            details={"path": str(archive_path), "reason": str(exc)},
        ) from exc
    return Manifest.parse(payload.decode("utf-8", errors="replace"))


__all__ = ["DEFAULT_HEADER", "MANIFEST_NAME", "Manifest", "read_manifest"]
