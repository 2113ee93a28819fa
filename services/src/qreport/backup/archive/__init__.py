"""Hashed zip payload archives."""

from __future__ import annotations

from .builder import ArchiveBuilder
from .extractor import ArchiveExtractor
from .manifest import MANIFEST_NAME, Manifest, read_manifest
from .models import (
    ArchiveConfig,
    ArchiveEntry,
    ArchiveItem,
    ExpectedEntry,
    entry_name,
    norm_path,
)

__all__ = [
    "ArchiveBuilder",
    "ArchiveConfig",
    "ArchiveEntry",
    "ArchiveExtractor",
    "ArchiveItem",
    "ExpectedEntry",
    "MANIFEST_NAME",
    "Manifest",
    "entry_name",
    "norm_path",
    "read_manifest",
]
