"""Persistence helpers for backup artifacts."""

from __future__ import annotations

from .atomic import (
    exclusive_path,
    flush_handle,
    locked_path,
    replace_file,
    temp_sibling,
    write_bytes_atomic,
    write_json_atomic,
    write_text_atomic,
)

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
