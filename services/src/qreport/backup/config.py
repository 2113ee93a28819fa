"""Service configuration utilities."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, ClassVar, Literal, cast

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .archive.models import MB, ArchiveConfig


def _default_data_dir() -> Path:
    """Use ``./qreport_data`` under the working directory by default."""

    return Path.cwd() / "qreport_data"


class BackupSettings(BaseModel):
    """Runtime configuration for the backup engine and its HTTP surface."""

    ENV_PREFIX: ClassVar[str] = "QREPORT_"
    ENV_FILE: ClassVar[str | None] = ".env"
    ENV_FILE_ENCODING: ClassVar[str] = "utf-8"

    model_config: ClassVar[ConfigDict] = cast(
        ConfigDict,
        {
            "extra": "ignore",
            "env_prefix": ENV_PREFIX,
        },
    )

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Root directory holding backups, photos, signatures and service state.",
    )
    buffer_size: int = Field(
        default=8192,
        ge=512,
        description="Chunk size in bytes used when streaming archive entries.",
    )
    photo_max_entry_bytes: int = Field(
        default=50 * MB,
        gt=0,
        description="Largest photo accepted into a photo archive.",
    )
    photo_max_total_bytes: int | None = Field(
        default=None,
        description="Cumulative photo bytes after which no more photos are archived; unset means unlimited.",
    )
    signature_max_entry_bytes: int = Field(
        default=10 * MB,
        gt=0,
        description="Largest signature accepted into a signature archive.",
    )
    signature_max_total_bytes: int | None = Field(
        default=500 * MB,
        description="Cumulative signature bytes after which no more signatures are archived.",
    )
    validation_threshold: float = Field(
        default=0.90,
        ge=0.0,
        le=1.0,
        description="Fraction of manifest entries that must validate before an aggregate warning is raised.",
    )
    restore_batch_size: int = Field(
        default=500,
        ge=1,
        description="Number of records applied to the data store per restore batch.",
    )
    share_cleanup_delay_seconds: int = Field(
        default=3600,
        ge=1,
        description="Seconds a share bundle is kept before it is deleted.",
    )
    verifier_enabled: bool = Field(
        default=False,
        description="Enable the periodic backup verification job.",
    )
    verifier_interval_seconds: int = Field(
        default=6 * 60 * 60,
        ge=60,
        description="Interval in seconds between backup verification runs.",
    )
    max_request_body_bytes: int = Field(
        default=64 * 1024,
        ge=1024,
        description="Maximum allowed size in bytes for incoming request bodies.",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version recorded in backup metadata.",
    )

    @field_validator("data_dir")
    @classmethod
    def _ensure_data_dir_exists(cls, value: Path) -> Path:
        """Validate that the configured data directory exists."""

        if not value.exists():
            raise ValueError(f"Data directory does not exist: {value}")
        return value

    @field_validator("photo_max_total_bytes", "signature_max_total_bytes")
    @classmethod
    def _validate_total_limit(cls, value: int | None, info: ValidationInfo) -> int | None:
        if value is not None and value <= 0:
            raise ValueError(f"{info.field_name} must be positive when set")
        return value

    @field_validator("photo_max_total_bytes", "signature_max_total_bytes", mode="before")
    @classmethod
    def _blank_total_is_unlimited(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in {"", "none", "unlimited"}:
            return None
        return value

    @staticmethod
    def _parse_env_file(path: Path, encoding: str) -> dict[str, str]:
        """Parse an environment file supporting `export` and quoted values."""

        parsed: dict[str, str] = {}

        for raw_line in path.read_text(encoding=encoding).splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].strip()

            if "=" not in line:
                continue

            key, raw_value = line.split("=", 1)
            key = key.strip()
            value = raw_value.strip()

            if value and value[0] == value[-1] and value[0] in {'"', "'"}:
                value = value[1:-1]

            parsed[key] = value

        return parsed

    @classmethod
    def from_environment(cls) -> "BackupSettings":
        """Load settings from environment variables or a `.env` file."""

        env_prefix = cls.ENV_PREFIX
        env_file_name = cls.ENV_FILE
        env_encoding = cls.ENV_FILE_ENCODING

        file_values: dict[str, str] = {}
        if env_file_name:
            env_file_path = Path(env_file_name)
            if not env_file_path.is_absolute():
                env_file_path = Path.cwd() / env_file_path
            if env_file_path.exists():
                file_values = cls._parse_env_file(env_file_path, env_encoding)

        overrides: dict[str, str] = {}
        for field_name in cls.model_fields:
            env_key = f"{env_prefix}{field_name.upper()}"
            if env_key in os.environ:
                overrides[field_name] = os.environ[env_key]
            elif env_key in file_values:
                overrides[field_name] = file_values[env_key]

        typed_overrides = cast(dict[str, Any], overrides)
        return cls(**typed_overrides)

    @property
    def backups_dir(self) -> Path:
        """Directory holding one subdirectory per backup."""

        return self.data_dir / "backups"

    @property
    def photos_dir(self) -> Path:
        return self.data_dir / "photos"

    @property
    def signatures_dir(self) -> Path:
        return self.data_dir / "signatures"

    @property
    def share_dir(self) -> Path:
        return self.data_dir / "share"

    @property
    def state_dir(self) -> Path:
        """Service bookkeeping such as verification reports and diagnostics."""

        return self.data_dir / "state"

    def archive_config(self, kind: Literal["photos", "signatures"]) -> ArchiveConfig:
        """Return the archive limits for the given payload kind."""

        if kind == "photos":
            return ArchiveConfig(
                buffer_size=self.buffer_size,
                max_entry_size=self.photo_max_entry_bytes,
                max_total_size=self.photo_max_total_bytes,
            )
        if kind == "signatures":
            return ArchiveConfig(
                buffer_size=self.buffer_size,
                max_entry_size=self.signature_max_entry_bytes,
                max_total_size=self.signature_max_total_bytes,
            )
        raise ValueError(f"Unknown archive kind: {kind}")


__all__: list[str] = ["BackupSettings"]
