"""Central error definitions for the backup engine."""

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


ERROR_DEFINITIONS: Dict[str, ErrorDefinition] = {
    "NOT_FOUND": ErrorDefinition("NOT_FOUND", "Backup resource not found.", HTTPStatus.NOT_FOUND),
    "CORRUPT": ErrorDefinition("CORRUPT", "Backup data is unreadable or malformed.", HTTPStatus.UNPROCESSABLE_ENTITY),
    "SIZE_EXCEEDED": ErrorDefinition("SIZE_EXCEEDED", "Size limit exceeded.", HTTPStatus.REQUEST_ENTITY_TOO_LARGE),
    "PAYLOAD_TOO_LARGE": ErrorDefinition(
        "PAYLOAD_TOO_LARGE", "Request payload exceeds allowed size.", HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    ),
    "HASH_MISMATCH": ErrorDefinition("HASH_MISMATCH", "Content hash mismatch.", HTTPStatus.UNPROCESSABLE_ENTITY),
    "PARTIAL_FAILURE": ErrorDefinition("PARTIAL_FAILURE", "Operation partially failed.", HTTPStatus.INTERNAL_SERVER_ERROR),
    "CANCELLED": ErrorDefinition("CANCELLED", "Operation cancelled.", HTTPStatus.CONFLICT),
    "IO_FAILURE": ErrorDefinition("IO_FAILURE", "Storage I/O failed.", HTTPStatus.INTERNAL_SERVER_ERROR),
    "CONFLICT": ErrorDefinition("CONFLICT", "Conflicting operation in progress.", HTTPStatus.CONFLICT),
    "VALIDATION": ErrorDefinition("VALIDATION", "Validation failed.", HTTPStatus.BAD_REQUEST),
    "INTERNAL": ErrorDefinition("INTERNAL", "Internal server error.", HTTPStatus.INTERNAL_SERVER_ERROR),
}

DEFAULT_ERROR_DEFINITION = ErrorDefinition(
    "UNEXPECTED_ERROR",
    "Unexpected error occurred.",
    HTTPStatus.INTERNAL_SERVER_ERROR,
)


class BackupError(Exception):
    """Base error raised by backup, archive and restore operations."""

    code = "INTERNAL"

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    @property
    def definition(self) -> ErrorDefinition:
        return ERROR_DEFINITIONS.get(self.code, DEFAULT_ERROR_DEFINITION)


class NotFoundError(BackupError):
    code = "NOT_FOUND"


class CorruptError(BackupError):
    """Raised for unreadable containers or malformed serialized data."""

    code = "CORRUPT"


class SizeExceededError(BackupError):
    """Soft limit breach; callers skip the item rather than fail."""

    code = "SIZE_EXCEEDED"


class HashMismatchError(BackupError):
    code = "HASH_MISMATCH"


class PartialFailureError(BackupError):
    code = "PARTIAL_FAILURE"


class OperationCancelledError(BackupError):
    code = "CANCELLED"


class IOFailureError(BackupError):
    """Fatal storage failure that aborts the whole operation."""

    code = "IO_FAILURE"


class ConflictError(BackupError):
    code = "CONFLICT"


def error_for_code(code: str, message: str, *, details: Mapping[str, Any] | None = None) -> BackupError:
    """Instantiate the ``BackupError`` subclass registered for ``code``."""

    for error_cls in BackupError.__subclasses__():
        if error_cls.code == code:
            return error_cls(message, details=details)
    return BackupError(message, details=details)


class ServiceError(Exception):
    """Structured error for router responses."""

    def __init__(
        self,
        *,
        code: str,
        status_code: int,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.status_code = int(status_code)


__all__ = [
    "BackupError",
    "ConflictError",
    "CorruptError",
    "DEFAULT_ERROR_DEFINITION",
    "ERROR_DEFINITIONS",
    "ErrorDefinition",
    "HashMismatchError",
    "IOFailureError",
    "NotFoundError",
    "OperationCancelledError",
    "PartialFailureError",
    "ServiceError",
    "SizeExceededError",
    "error_for_code",
]
