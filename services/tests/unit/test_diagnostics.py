"""Tests for diagnostic logging utilities."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from qreport.backup.diagnostics import DiagnosticLogger, sanitize_details
from qreport.backup.http import get_trace_context
from qreport.backup.logging_config import JsonFormatter, build_logging_config


def test_log_neutralises_path_traversal(tmp_path: Path) -> None:
    logger = DiagnosticLogger(tmp_path)

    path = logger.log(code="../bad\\path", message="blocked")

    assert path.parent == tmp_path / "diagnostics"
    timestamp, slug = path.stem.split("_", 1)
    assert timestamp
    assert slug == "bad-path"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["code"] == "../bad\\path"
    assert payload["message"] == "blocked"


def test_log_redacts_sensitive_details(tmp_path: Path) -> None:
    path = DiagnosticLogger(tmp_path).log(
        code="BACKUP_FAILED",
        message="failed",
        details={"backup_dir": "/srv/data/backups/x", "file_path": "/tmp/a", "error_code": "IO_FAILURE"},
    )

    details = json.loads(path.read_text(encoding="utf-8"))["details"]
    assert details["file_path"] == "[REDACTED]"
    assert details["error_code"] == "IO_FAILURE"


def test_repeated_codes_do_not_overwrite(tmp_path: Path) -> None:
    logger = DiagnosticLogger(tmp_path)

    paths = {logger.log(code="RESTORE_FAILED", message=str(index)) for index in range(3)}

    assert len(paths) == 3


def test_sanitize_details_handles_empty() -> None:
    assert sanitize_details(None) == {}
    assert sanitize_details({"device_name": "Pixel", "count": 3}) == {"device_name": "[REDACTED]", "count": 3}


def test_json_formatter_emits_structured_record() -> None:
    record = logging.makeLogRecord(
        {"name": "qreport.backup.layout", "levelname": "WARNING", "msg": "skipped %s", "args": ("x",)}
    )
    record.extra_payload = {"file_path": "/secret", "count": 2}

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "skipped x"
    assert payload["logger"] == "qreport.backup.layout"
    assert payload["file_path"] == "[REDACTED]"
    assert payload["count"] == 2


def test_nested_details_are_redacted() -> None:
    details = {
        "errors": [{"entry_path": "55/valve.jpg", "reason": "invalid hash"}],
        "source": {"backup_dir": "/srv/backups/x", "count": 4},
    }

    assert sanitize_details(details) == {
        "errors": [{"entry_path": "[REDACTED]", "reason": "invalid hash"}],
        "source": {"backup_dir": "[REDACTED]", "count": 4},
    }


def test_old_diagnostics_are_pruned(tmp_path: Path) -> None:
    logger = DiagnosticLogger(tmp_path, max_files=2)

    paths = [logger.log(code="VERIFY_FAILED", message=str(index)) for index in range(4)]

    remaining = sorted(logger.directory.glob("*.json"))
    assert remaining == sorted(paths[-2:])


def test_json_formatter_includes_active_trace_id() -> None:
    record = logging.makeLogRecord({"name": "qreport.backup.http", "levelname": "INFO", "msg": "request"})
    token = get_trace_context().set("0b4f6a8e-3c1d-4e5f-9a7b-2c3d4e5f6a7b")
    try:
        payload = json.loads(JsonFormatter().format(record))
    finally:
        get_trace_context().reset(token)

    assert payload["trace_id"] == "0b4f6a8e-3c1d-4e5f-9a7b-2c3d4e5f6a7b"


def test_build_logging_config_sets_service_level() -> None:
    config = build_logging_config("debug")

    assert config["loggers"]["qreport.backup"]["level"] == "DEBUG"
    assert build_logging_config()["loggers"]["qreport.backup"]["level"] == "INFO"
    with pytest.raises(ValueError):
        build_logging_config("chatty")
