"""Integrity validation for payload archives and serialised snapshots."""

from __future__ import annotations

import hashlib
import json
import logging
import zipfile
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .archive.manifest import MANIFEST_NAME, read_manifest
from .archive.models import DEFAULT_BUFFER_SIZE, ExpectedEntry
from .errors import BackupError
from .models.snapshot import TABLE_ORDER
from .storage import ByteSource, ZipByteSource

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.90

_REQUIRED_SECTIONS = ("metadata", "database", "settings", "photoManifest")
_REQUIRED_METADATA = ("id", "timestamp", "appVersion")


class ValidationResult(BaseModel):
    """Structured outcome of an integrity check."""

    model_config = ConfigDict(extra="ignore")

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    validated_count: int = 0
    expected_count: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult(
            errors=[*self.errors, *other.errors],
            warnings=[*self.warnings, *other.warnings],
            validated_count=self.validated_count + other.validated_count,
            expected_count=self.expected_count + other.expected_count,
        )


def _digest(source: ByteSource, name: str, buffer_size: int) -> str:
    digest = hashlib.sha256()
    with source.open(name) as handle:
        for chunk in iter(lambda: handle.read(buffer_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def validate_manifest(
    expected: Mapping[str, ExpectedEntry],
    source: ByteSource,
    threshold: float = DEFAULT_THRESHOLD,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> ValidationResult:
    """Check every expected entry in ``source`` against its recorded hash.

    Missing entries and hash mismatches are errors; a size difference alone is
    only a warning. When fewer than ``threshold`` of the expected entries
    validate, one aggregate warning is appended as well.
    """

    errors: list[str] = []
    warnings: list[str] = []
    validated = 0

    for name, entry in expected.items():
        if not source.exists(name):
            errors.append(f"missing: {name}")
            continue
        try:
            if entry.size is not None and source.size(name) != entry.size:
                warnings.append(f"size differs: {name}")
            actual = _digest(source, name, buffer_size)
        except (OSError, zipfile.BadZipFile, BackupError) as exc:
            LOGGER.warning("Unable to hash %s: %s", name, exc)
            errors.append(f"unreadable: {name}")
            continue
        if actual != entry.content_hash.lower():
            errors.append(f"invalid hash: {name}")
            continue
        validated += 1

    total = len(expected)
    if total > 0 and validated / total < threshold:
        warnings.append(f"only {validated} of {total} entries validated")

    return ValidationResult(
        errors=errors,
        warnings=warnings,
        validated_count=validated,
        expected_count=total,
    )


def verify_archive(path: Path, threshold: float = DEFAULT_THRESHOLD) -> ValidationResult:
    """Validate an archive in place against its embedded manifest."""

    try:
        manifest = read_manifest(Path(path))
    except BackupError as exc:
        return ValidationResult(errors=[exc.message])
    if manifest is None:
        return ValidationResult(errors=[f"{MANIFEST_NAME} is missing"])

    expected = {name: ExpectedEntry(content_hash=digest) for name, digest in manifest.hashes.items()}
    try:
        with ZipByteSource(Path(path)) as source:
            result = validate_manifest(expected, source, threshold)
            unlisted = [
                name for name in source.names() if name != MANIFEST_NAME and name not in expected
            ]
    except BackupError as exc:
        return ValidationResult(errors=[exc.message], expected_count=len(expected))

    if unlisted:
        result.warnings.extend(f"unlisted: {name}" for name in unlisted)
    return result


def validate_snapshot_payload(payload: str | bytes | Mapping[str, Any]) -> ValidationResult:
    """Structural check of a serialised snapshot before it is parsed."""

    errors: list[str] = []
    warnings: list[str] = []

    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return ValidationResult(errors=[f"invalid JSON: {exc}"])
    else:
        data = payload

    if not isinstance(data, Mapping):
        return ValidationResult(errors=["snapshot root must be an object"])

    for section in _REQUIRED_SECTIONS:
        if section not in data:
            errors.append(f"missing section: {section}")

    metadata = data.get("metadata")
    if isinstance(metadata, Mapping):
        for key in _REQUIRED_METADATA:
            if not metadata.get(key):
                errors.append(f"missing metadata field: {key}")
    elif "metadata" in data:
        errors.append("metadata must be an object")

    database = data.get("database")
    if isinstance(database, Mapping):
        for table in TABLE_ORDER:
            key = to_camel(table)
            if key not in database:
                warnings.append(f"missing table: {key}")
            elif not isinstance(database[key], list):
                errors.append(f"table is not a list: {key}")
    elif "database" in data:
        errors.append("database must be an object")

    return ValidationResult(errors=errors, warnings=warnings)


__all__ = [
    "DEFAULT_THRESHOLD",
    "ExpectedEntry",
    "ValidationResult",
    "validate_manifest",
    "validate_snapshot_payload",
    "verify_archive",
]
