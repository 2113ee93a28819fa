"""Diagnostic records for failed backup, restore and verification runs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .persistence import write_json_atomic

LOGGER = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
DIAGNOSTICS_DIRNAME = "diagnostics"

# Filesystem locations and free-text fields can identify customers or devices.
_SENSITIVE_DETAIL_KEYWORDS = ("path", "file", "dir", "device", "description", "token")


@dataclass
class DiagnosticLogger:
    """Write one JSON document per failure under ``<root>/diagnostics``.

    Only the newest ``max_files`` documents are kept.
    """

    root: Path
    max_files: int = 200

    @property
    def directory(self) -> Path:
        return Path(self.root) / DIAGNOSTICS_DIRNAME

    def log(
        self,
        *,
        code: str,
        message: str,
        details: Mapping[str, Any] | None = None,
    ) -> Path:
        directory = self.directory
        directory.mkdir(parents=True, exist_ok=True)

        now = datetime.now(tz=timezone.utc)
        stem = f"{now.strftime('%Y%m%dT%H%M%S%fZ')}_{_normalise_code(code)}"
        path = directory / f"{stem}.json"
        suffix = 1
        while path.exists():
            path = directory / f"{stem}_{suffix}.json"
            suffix += 1

        write_json_atomic(
            path,
            {
                "timestamp": now.isoformat().replace("+00:00", "Z"),
                "code": code,
                "message": message,
                "details": sanitize_details(details),
            },
        )
        self._prune()
        return path

    def _prune(self) -> None:
        records = sorted(self.directory.glob("*.json"))
        for stale in records[: max(len(records) - self.max_files, 0)]:
            try:
                stale.unlink()
            except OSError as exc:
                LOGGER.warning("Unable to prune diagnostic %s: %s", stale.name, exc)


def _normalise_code(code: str) -> str:
    """Return a filesystem-safe slug for the diagnostic code."""

    lowered = code.lower()
    without_separators = re.sub(r"[\\/]+", "-", lowered)
    cleaned = re.sub(r"[^a-z0-9_-]+", "-", without_separators)
    normalised = re.sub(r"-+", "-", cleaned).strip("-")
    return normalised or "diagnostic"


def sanitize_details(details: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``details`` with sensitive string values redacted.

    Nested mappings and lists are walked, so an ``errors`` list of per-entry
    dictionaries is scrubbed the same way as the top level.
    """

    if not details:
        return {}
    return {key: _scrub(key, value) for key, value in details.items()}


def _scrub(key: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        return {inner: _scrub(inner, item) for inner, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(key, item) for item in value]
    if isinstance(value, str) and _is_sensitive(key):
        return REDACTED
    return value


def _is_sensitive(key: str) -> bool:
    lower_key = str(key).lower()
    return any(keyword in lower_key for keyword in _SENSITIVE_DETAIL_KEYWORDS)


__all__ = ["DiagnosticLogger", "REDACTED", "sanitize_details"]
