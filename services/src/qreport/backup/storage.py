"""File-store and byte-source abstractions used by layout and validation code."""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path
from typing import IO, Protocol, runtime_checkable

from .errors import CorruptError, IOFailureError, NotFoundError
from .persistence import write_bytes_atomic, write_text_atomic

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ByteSource(Protocol):
    """Named byte streams that can be checked against a manifest."""

    def exists(self, name: str) -> bool: ...

    def size(self, name: str) -> int: ...

    def open(self, name: str) -> IO[bytes]: ...


class FileStore(ByteSource, Protocol):
    """Filesystem operations the backup layout relies on."""

    def is_dir(self, name: str | Path) -> bool: ...

    def read_text(self, name: str | Path) -> str: ...

    def write_text(self, name: str | Path, content: str) -> Path: ...

    def write_bytes(self, name: str | Path, payload: bytes) -> Path: ...

    def list_dir(self, name: str | Path) -> list[Path]: ...

    def remove(self, name: str | Path) -> None: ...


class LocalFileStore:
    """Directory-backed :class:`FileStore`.

    Relative names resolve under ``root``; absolute paths are used as given.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else Path.cwd()

    def path(self, name: str | Path) -> Path:
        return self.root / name

    def exists(self, name: str | Path) -> bool:
        return self.path(name).exists()

    def is_dir(self, name: str | Path) -> bool:
        return self.path(name).is_dir()

    def size(self, name: str | Path) -> int:
        target = self.path(name)
        try:
            return target.stat().st_size
        except FileNotFoundError as exc:
            raise NotFoundError(f"File not found: {target}", details={"path": str(target)}) from exc

    def open(self, name: str | Path) -> IO[bytes]:
        target = self.path(name)
        try:
            return target.open("rb")
        except FileNotFoundError as exc:
            raise NotFoundError(f"File not found: {target}", details={"path": str(target)}) from exc

    def read_text(self, name: str | Path) -> str:
        target = self.path(name)
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(f"File not found: {target}", details={"path": str(target)}) from exc
        except UnicodeDecodeError as exc:
            raise CorruptError(f"File is not valid UTF-8: {target}", details={"path": str(target)}) from exc

    def write_text(self, name: str | Path, content: str) -> Path:
        target = self.path(name)
        try:
            write_text_atomic(target, content)
        except OSError as exc:
            raise IOFailureError(f"Failed to write {target}: {exc}", details={"path": str(target)}) from exc
        return target

    def write_bytes(self, name: str | Path, payload: bytes) -> Path:
        target = self.path(name)
        try:
            write_bytes_atomic(target, payload)
        except OSError as exc:
            raise IOFailureError(f"Failed to write {target}: {exc}", details={"path": str(target)}) from exc
        return target

    def list_dir(self, name: str | Path) -> list[Path]:
        target = self.path(name)
        if not target.is_dir():
            return []
        return sorted(target.iterdir(), key=lambda path: path.name)

    def remove(self, name: str | Path) -> None:
        target = self.path(name)
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()


class ZipByteSource:
    """Read-only :class:`ByteSource` over the entries of a zip archive."""

    def __init__(self, archive_path: Path) -> None:
        self.archive_path = Path(archive_path)
        if not self.archive_path.exists():
            raise NotFoundError(
                f"Archive not found: {self.archive_path}",
                details={"path": str(self.archive_path)},
            )
        try:
            self._archive = zipfile.ZipFile(self.archive_path)
        except (zipfile.BadZipFile, OSError) as exc:
            raise CorruptError(
                f"Archive is not a readable zip container: {self.archive_path.name}",
                details={"path": str(self.archive_path), "reason": str(exc)},
            ) from exc
        self._infos = {info.filename: info for info in self._archive.infolist() if not info.is_dir()}

    def __enter__(self) -> "ZipByteSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._archive.close()

    def names(self) -> list[str]:
        return list(self._infos)

    def exists(self, name: str) -> bool:
        return name in self._infos

    def size(self, name: str) -> int:
        try:
            return self._infos[name].file_size
        except KeyError as exc:
            raise NotFoundError(f"Entry not found: {name}", details={"entry": name}) from exc

    def open(self, name: str) -> IO[bytes]:
        if name not in self._infos:
            raise NotFoundError(f"Entry not found: {name}", details={"entry": name})
        return self._archive.open(self._infos[name])


__all__ = ["ByteSource", "FileStore", "LocalFileStore", "ZipByteSource"]
