"""Unit tests for archive extraction and hash verification."""

from __future__ import annotations

import hashlib
import zipfile
from pathlib import Path

from qreport.backup.archive import MANIFEST_NAME, ArchiveBuilder, ArchiveExtractor, ArchiveItem, Manifest
from qreport.backup.progress import CancellationToken, final_event


def _build(tmp_path: Path, files: dict[str, bytes]) -> Path:
    source_root = tmp_path / "source"
    items = []
    for name, payload in files.items():
        path = source_root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        items.append(ArchiveItem(source_path=path, entry_path=name))
    output = tmp_path / "archive.zip"
    result = final_event(ArchiveBuilder().build(items, output))
    assert result.kind == "completed"
    return output


def test_round_trip_restores_identical_bytes(tmp_path: Path) -> None:
    files = {
        "12/front.jpg": bytes(range(256)) * 40,
        "12/back.jpg": b"\xff\xd8" + b"jpeg" * 500,
        "13/detail.jpg": b"detail",
    }
    archive_path = _build(tmp_path, files)
    dest = tmp_path / "restored"

    result = final_event(ArchiveExtractor().extract(archive_path, dest))

    assert result.kind == "completed"
    assert result.count == 3
    assert result.warnings == ()
    for name, payload in files.items():
        assert (dest / name).read_bytes() == payload
    for entry in result.entries:
        assert entry.content_hash == hashlib.sha256(files[entry.entry_path]).hexdigest()


def test_count_excludes_manifest_but_manifest_is_materialised(tmp_path: Path) -> None:
    archive_path = _build(tmp_path, {"a.png": b"a", "b.png": b"b"})
    dest = tmp_path / "out"

    events = list(ArchiveExtractor().extract(archive_path, dest))

    result = events[-1]
    assert result.kind == "completed"
    assert result.count == 2
    assert all(event.total_count == 2 for event in events if event.kind == "in_progress")
    assert (dest / MANIFEST_NAME).exists()


def test_missing_archive_is_not_found(tmp_path: Path) -> None:
    result = final_event(ArchiveExtractor().extract(tmp_path / "nope.zip", tmp_path / "out"))

    assert result.kind == "error"
    assert result.code == "NOT_FOUND"


def test_unreadable_container_is_corrupt(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.zip"
    bogus.write_bytes(b"this is not a zip file")

    result = final_event(ArchiveExtractor().extract(bogus, tmp_path / "out"))

    assert result.kind == "error"
    assert result.code == "CORRUPT"


def test_empty_archive_completes_with_zero(tmp_path: Path) -> None:
    archive_path = tmp_path / "empty.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr(MANIFEST_NAME, "# header\n")

    result = final_event(ArchiveExtractor().extract(archive_path, tmp_path / "out"))

    assert result.kind == "completed"
    assert result.count == 0
    assert result.total_bytes == 0


def test_hash_discrepancies_become_warnings(tmp_path: Path) -> None:
    archive_path = _build(tmp_path, {"a.png": b"alpha", "b.png": b"beta"})
    expected = Manifest(
        {
            "a.png": hashlib.sha256(b"alpha").hexdigest(),
            "b.png": "0" * 64,
            "c.png": hashlib.sha256(b"gamma").hexdigest(),
        }
    )

    result = final_event(ArchiveExtractor().extract(archive_path, tmp_path / "out", expected=expected))

    assert result.kind == "completed"
    assert result.count == 2
    assert "invalid hash: b.png" in result.warnings
    assert "missing: c.png" in result.warnings
    assert not any("a.png" in warning for warning in result.warnings)


def test_verify_disabled_skips_hash_checks(tmp_path: Path) -> None:
    archive_path = _build(tmp_path, {"a.png": b"alpha"})

    result = final_event(
        ArchiveExtractor().extract(archive_path, tmp_path / "out", expected={"a.png": "0" * 64}, verify=False)
    )

    assert result.kind == "completed"
    assert result.warnings == ()


def test_entries_escaping_destination_are_skipped(tmp_path: Path) -> None:
    archive_path = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("../escape.txt", b"nope")
        archive.writestr("safe.txt", b"ok")
    dest = tmp_path / "out"

    result = final_event(ArchiveExtractor().extract(archive_path, dest))

    assert result.kind == "completed"
    assert result.count == 1
    assert (dest / "safe.txt").read_bytes() == b"ok"
    assert not (tmp_path / "escape.txt").exists()
    assert any("escapes destination" in warning for warning in result.warnings)


def test_cancelled_extraction_reports_cancelled(tmp_path: Path) -> None:
    archive_path = _build(tmp_path, {"a.png": b"alpha"})
    token = CancellationToken()
    token.cancel()

    result = final_event(ArchiveExtractor().extract(archive_path, tmp_path / "out", cancel=token))

    assert result.kind == "error"
    assert result.code == "CANCELLED"
