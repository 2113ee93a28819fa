"""Tests for service configuration loading."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from qreport.backup.archive.models import MB
from qreport.backup.config import BackupSettings


def test_from_environment_supports_export_and_quotes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure `.env` parsing honours export prefixes and quoted values with spaces."""

    data_dir = tmp_path / "Field Data" / "QReport"
    data_dir.mkdir(parents=True)

    env_content = (
        textwrap.dedent(
            """
        # comment line
          export QREPORT_DATA_DIR="{}"
        QREPORT_RESTORE_BATCH_SIZE='250'
        """
        )
        .strip()
        .format(data_dir)
    )
    (tmp_path / ".env").write_text(env_content, encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("QREPORT_DATA_DIR", raising=False)
    monkeypatch.delenv("QREPORT_RESTORE_BATCH_SIZE", raising=False)

    settings = BackupSettings.from_environment()

    assert settings.data_dir == data_dir
    assert settings.restore_batch_size == 250
    assert settings.backups_dir == data_dir / "backups"


def test_environment_overrides_env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text(f'QREPORT_DATA_DIR="{tmp_path}"\nQREPORT_BUFFER_SIZE=1024\n', encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("QREPORT_BUFFER_SIZE", "4096")

    settings = BackupSettings.from_environment()

    assert settings.buffer_size == 4096


def test_from_environment_validates_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing data directory raises a validation error."""

    missing_dir = tmp_path / "missing space"
    (tmp_path / ".env").write_text(f'QREPORT_DATA_DIR="{missing_dir}"\n', encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("QREPORT_DATA_DIR", raising=False)

    with pytest.raises(ValueError):
        BackupSettings.from_environment()


def test_blank_total_limit_means_unlimited(tmp_path: Path) -> None:
    settings = BackupSettings(data_dir=tmp_path, photo_max_total_bytes="", signature_max_total_bytes="1000")

    assert settings.photo_max_total_bytes is None
    assert settings.signature_max_total_bytes == 1000


def test_archive_config_per_kind(tmp_path: Path) -> None:
    settings = BackupSettings(data_dir=tmp_path, buffer_size=2048)

    photos = settings.archive_config("photos")
    signatures = settings.archive_config("signatures")

    assert photos.buffer_size == 2048
    assert photos.max_entry_size == 50 * MB
    assert photos.max_total_size is None
    assert signatures.max_entry_size == 10 * MB
    assert signatures.max_total_size == 500 * MB
    with pytest.raises(ValueError):
        settings.archive_config("videos")  # type: ignore[arg-type]


def test_invalid_threshold_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        BackupSettings(data_dir=tmp_path, validation_threshold=1.5)
