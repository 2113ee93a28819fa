"""Shared atomic file write utilities for backup persistence."""

from __future__ import annotations

import errno
import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import IO, Any, Iterator
from uuid import uuid4

from ..errors import ConflictError

_PATH_LOCKS: dict[str, Lock] = {}
_PATH_LOCKS_GUARD = Lock()


def _lock_for(target: Path) -> Lock:
    key = str(Path(target).resolve())
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = Lock()
            _PATH_LOCKS[key] = lock
    return lock


@contextmanager
def locked_path(target: Path) -> Iterator[None]:
    """Serialise access to ``target`` across threads."""

    lock = _lock_for(target)
    lock.acquire()
    try:
        yield
    finally:
        lock.release()


@contextmanager
def exclusive_path(target: Path) -> Iterator[None]:
    """Claim ``target`` for one writer, failing fast if another holds it."""

    lock = _lock_for(target)
    if not lock.acquire(blocking=False):
        raise ConflictError(
            f"Another operation is writing to {target}",
            details={"path": str(target)},
        )
    try:
        yield
    finally:
        lock.release()


def flush_handle(handle: IO[Any], *, durable: bool) -> None:
    """Flush file buffers and optionally fsync for durability."""

    handle.flush()
    if durable:
        os.fsync(handle.fileno())


_TRANSIENT_ERRNOS = {errno.EACCES, errno.EPERM}
_TRANSIENT_WINERRORS = {5, 32}


def replace_file(
    temp_path: Path,
    target_path: Path,
    *,
    attempts: int = 5,
    delay: float = 0.05,
) -> None:
    """Atomically replace ``target_path`` with retry support on Windows."""

    last_error: OSError | None = None
    for attempt in range(attempts):
        try:
            temp_path.replace(target_path)
            return
        except OSError as exc:
            winerror = getattr(exc, "winerror", None)
            if exc.errno not in _TRANSIENT_ERRNOS and winerror not in _TRANSIENT_WINERRORS:
                raise
            last_error = exc
            if attempt == attempts - 1:
                break
            time.sleep(delay * (attempt + 1))
    if last_error is not None:
        raise last_error


def temp_sibling(path: Path) -> Path:
    """Return a hidden, unique temporary path next to ``path``."""

    return path.parent / f".{path.name}.{uuid4().hex}.tmp"


def write_bytes_atomic(path: Path, payload: bytes, *, durable: bool = True) -> None:
    """Write raw bytes to disk using an atomic rename."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with locked_path(path):
        temp_path = temp_sibling(path)
        try:
            with temp_path.open("wb") as handle:
                handle.write(payload)
                flush_handle(handle, durable=durable)
            replace_file(temp_path, path)
        finally:
            if temp_path.exists():
                temp_path.unlink()


def write_json_atomic(path: Path, payload: dict[str, Any], *, durable: bool = True) -> None:
    """Write JSON to disk using an atomic rename."""

    encoded = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    write_bytes_atomic(path, encoded, durable=durable)


def write_text_atomic(path: Path, content: str, *, durable: bool = True) -> None:
    """Write UTF-8 text to disk atomically with normalised newlines."""

    normalized = content.replace("\r\n", "\n")
    if not normalized.endswith("\n"):
        normalized = f"{normalized}\n"
    write_bytes_atomic(path, normalized.encode("utf-8"), durable=durable)


__all__ = [
    "exclusive_path",
    "flush_handle",
    "locked_path",
    "replace_file",
    "temp_sibling",
    "write_bytes_atomic",
    "write_json_atomic",
    "write_text_atomic",
]
