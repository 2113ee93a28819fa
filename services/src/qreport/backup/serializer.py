"""JSON serialisation and checksums for backup snapshots."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from .errors import CorruptError
from .models.snapshot import BackupSnapshot

LOGGER = logging.getLogger(__name__)


class Serializer(Protocol):
    def dumps(self, snapshot: BackupSnapshot) -> str: ...

    def loads(self, payload: str) -> BackupSnapshot: ...


class SnapshotSerializer:
    """Serialise snapshots to indented camelCase JSON."""

    def __init__(self, *, indent: int | None = 2) -> None:
        self._indent = indent

    def to_dict(self, snapshot: BackupSnapshot) -> dict[str, Any]:
        return snapshot.to_payload()

    def dumps(self, snapshot: BackupSnapshot) -> str:
        return json.dumps(self.to_dict(snapshot), indent=self._indent, ensure_ascii=False)

    def loads(self, payload: str) -> BackupSnapshot:
        try:
            raw = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise CorruptError(f"Snapshot is not valid JSON: {exc.msg}", details={"line": exc.lineno}) from exc
        return self.from_dict(raw)

    def from_dict(self, raw: Any) -> BackupSnapshot:
        if not isinstance(raw, dict):
            raise CorruptError("Snapshot payload must be a JSON object")
        try:
            return BackupSnapshot.model_validate(raw)
        except ValidationError as exc:
            raise CorruptError(
                "Snapshot failed schema validation",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc

    def checksum(self, snapshot: BackupSnapshot) -> str:
        """SHA-256 of the snapshot serialised with a blank checksum and size.

        Both fields are derived from the serialised bytes, so they are reset
        before hashing on write and on verification alike.
        """

        neutral = snapshot.model_copy(
            update={"metadata": snapshot.metadata.model_copy(update={"checksum": "", "total_size": 0})}
        )
        return hashlib.sha256(self.dumps(neutral).encode("utf-8")).hexdigest()

    def seal(self, snapshot: BackupSnapshot) -> BackupSnapshot:
        """Return ``snapshot`` with its checksum and total size filled in."""

        checksum = self.checksum(snapshot)
        sealed = snapshot.model_copy(
            update={"metadata": snapshot.metadata.model_copy(update={"checksum": checksum, "total_size": 0})}
        )
        total_size = len(self.dumps(sealed).encode("utf-8"))
        total_size += snapshot.photo_manifest.total_size + snapshot.signature_manifest.total_size
        return snapshot.model_copy(
            update={
                "metadata": snapshot.metadata.model_copy(update={"checksum": checksum, "total_size": total_size})
            }
        )

    def verify(self, snapshot: BackupSnapshot) -> bool:
        expected = snapshot.metadata.checksum
        if not expected:
            LOGGER.warning("Snapshot %s carries no checksum", snapshot.metadata.id)
            return False
        actual = self.checksum(snapshot)
        if actual != expected:
            LOGGER.warning("Checksum mismatch for snapshot %s", snapshot.metadata.id)
            return False
        return True


__all__ = ["Serializer", "SnapshotSerializer"]
