"""Pydantic schema for serialised backup snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..archive.models import ArchiveEntry, ExpectedEntry

Record = dict[str, Any]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Referenced tables precede the tables that reference them.
TABLE_ORDER: tuple[str, ...] = (
    "clients",
    "facilities",
    "contacts",
    "contracts",
    "facility_islands",
    "check_ups",
    "check_items",
    "photos",
    "spare_parts",
    "check_up_associations",
    "technical_interventions",
)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DatabaseBackup(CamelModel):
    """One list of opaque records per table."""

    clients: list[Record] = Field(default_factory=list)
    facilities: list[Record] = Field(default_factory=list)
    contacts: list[Record] = Field(default_factory=list)
    contracts: list[Record] = Field(default_factory=list)
    facility_islands: list[Record] = Field(default_factory=list)
    check_ups: list[Record] = Field(default_factory=list)
    check_items: list[Record] = Field(default_factory=list)
    photos: list[Record] = Field(default_factory=list)
    spare_parts: list[Record] = Field(default_factory=list)
    check_up_associations: list[Record] = Field(default_factory=list)
    technical_interventions: list[Record] = Field(default_factory=list)
    exported_at: datetime = EPOCH

    def table(self, name: str) -> list[Record]:
        if name not in TABLE_ORDER:
            raise KeyError(name)
        return getattr(self, name)

    def tables(self) -> dict[str, list[Record]]:
        return {name: self.table(name) for name in TABLE_ORDER}

    def total_record_count(self) -> int:
        return sum(len(records) for records in self.tables().values())

    def is_empty(self) -> bool:
        return self.total_record_count() == 0

    @classmethod
    def empty(cls) -> "DatabaseBackup":
        return cls(exported_at=EPOCH)


class SettingsBackup(CamelModel):
    """Application settings grouped into named sections."""

    sections: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.sections


class ArchivedFile(CamelModel):
    entry_path: str
    size_bytes: int = Field(ge=0)
    sha256: str

    @classmethod
    def from_entry(cls, entry: ArchiveEntry) -> "ArchivedFile":
        return cls(entry_path=entry.entry_path, size_bytes=entry.source_size, sha256=entry.content_hash)


def _expected(files: Iterable[ArchivedFile]) -> dict[str, ExpectedEntry]:
    return {item.entry_path: ExpectedEntry(content_hash=item.sha256, size=item.size_bytes) for item in files}


class PhotoManifest(CamelModel):
    total_photos: int = 0
    total_size: int = 0
    includes_thumbnails: bool = False
    photos: list[ArchivedFile] = Field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: Iterable[ArchiveEntry], *, includes_thumbnails: bool = False) -> "PhotoManifest":
        files = [ArchivedFile.from_entry(entry) for entry in entries]
        return cls(
            total_photos=len(files),
            total_size=sum(item.size_bytes for item in files),
            includes_thumbnails=includes_thumbnails,
            photos=files,
        )

    def expected_entries(self) -> dict[str, ExpectedEntry]:
        return _expected(self.photos)


class SignatureManifest(CamelModel):
    total_signatures: int = 0
    total_size: int = 0
    signatures: list[ArchivedFile] = Field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: Iterable[ArchiveEntry]) -> "SignatureManifest":
        files = [ArchivedFile.from_entry(entry) for entry in entries]
        return cls(
            total_signatures=len(files),
            total_size=sum(item.size_bytes for item in files),
            signatures=files,
        )

    def expected_entries(self) -> dict[str, ExpectedEntry]:
        return _expected(self.signatures)


class BackupType(str, Enum):
    FULL = "FULL"
    DATABASE_ONLY = "DATABASE_ONLY"


class BackupMetadata(CamelModel):
    id: str = Field(min_length=1)
    timestamp: datetime
    version: int = 1
    app_version: str
    database_version: int = 1
    device_info: dict[str, str] = Field(default_factory=dict)
    backup_type: BackupType = BackupType.FULL
    description: str | None = None
    checksum: str = ""
    total_size: int = 0


class BackupSnapshot(CamelModel):
    """Complete serialised dataset snapshot."""

    metadata: BackupMetadata
    database: DatabaseBackup = Field(default_factory=DatabaseBackup.empty)
    settings: SettingsBackup = Field(default_factory=SettingsBackup)
    photo_manifest: PhotoManifest = Field(default_factory=PhotoManifest)
    signature_manifest: SignatureManifest = Field(default_factory=SignatureManifest)

    def includes_photos(self) -> bool:
        return self.photo_manifest.total_photos > 0

    def includes_signatures(self) -> bool:
        return self.signature_manifest.total_signatures > 0


class BackupSortOrder(str, Enum):
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"
    SIZE_DESC = "size_desc"
    SIZE_ASC = "size_asc"
    NAME_DESC = "name_desc"
    NAME_ASC = "name_asc"


class BackupInfo(CamelModel):
    """Listing summary for one stored backup."""

    id: str
    created_at: datetime
    description: str | None = None
    total_size: int = 0
    record_count: int = 0
    photo_count: int = 0
    includes_photos: bool = False
    dir_path: str | None = None
    file_path: str
    app_version: str


__all__ = [
    "ArchivedFile",
    "BackupInfo",
    "BackupMetadata",
    "BackupSnapshot",
    "BackupSortOrder",
    "BackupType",
    "CamelModel",
    "DatabaseBackup",
    "EPOCH",
    "PhotoManifest",
    "Record",
    "SettingsBackup",
    "SignatureManifest",
    "TABLE_ORDER",
]
