"""Unit tests for atomic persistence helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from qreport.backup.errors import ConflictError
from qreport.backup.persistence import exclusive_path, temp_sibling, write_json_atomic, write_text_atomic


def test_write_json_atomic_creates_parents(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "report.json"

    write_json_atomic(target, {"status": "ok"})

    assert json.loads(target.read_text(encoding="utf-8")) == {"status": "ok"}
    assert not list(target.parent.glob("*.tmp"))


def test_write_text_atomic_normalises_newlines(tmp_path: Path) -> None:
    target = tmp_path / "INFO.txt"

    write_text_atomic(target, "line one\r\nline two")

    assert target.read_bytes() == b"line one\nline two\n"


def test_exclusive_path_rejects_second_holder(tmp_path: Path) -> None:
    target = tmp_path / "photos.zip"

    with exclusive_path(target):
        with pytest.raises(ConflictError):
            with exclusive_path(target):
                pass
        with exclusive_path(tmp_path / "signatures.zip"):
            pass

    with exclusive_path(target):
        pass


def test_temp_sibling_is_hidden_and_unique(tmp_path: Path) -> None:
    target = tmp_path / "photos.zip"

    first = temp_sibling(target)
    second = temp_sibling(target)

    assert first.parent == tmp_path
    assert first.name.startswith(".photos.zip.")
    assert first != second
