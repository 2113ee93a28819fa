"""HTTP utilities shared across the backup service routers."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, NoReturn
from uuid import UUID, uuid4

from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .diagnostics import DiagnosticLogger
from .errors import DEFAULT_ERROR_DEFINITION, ERROR_DEFINITIONS, BackupError, ServiceError
from .models.errors import ErrorResponse

LOGGER = logging.getLogger(__name__)

TRACE_ID_HEADER: Final[str] = "x-trace-id"
_TRACE_ID_CONTEXT: ContextVar[str] = ContextVar("qreport_trace_id", default="")

_STATUS_ERROR_CODES: Final[dict[int, str]] = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "VALIDATION",
    status.HTTP_409_CONFLICT: "CONFLICT",
}

DEFAULT_ERROR_RESPONSES: Final[dict[int | str, dict[str, Any]]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


def default_error_responses() -> dict[int | str, dict[str, Any]]:
    """Return a copy of the default error response mapping for routers."""

    return {status_code: dict(schema) for status_code, schema in DEFAULT_ERROR_RESPONSES.items()}


def resolve_trace_id(candidate: str | None) -> str:
    """Return a valid UUID string, preferring the provided candidate."""

    if candidate:
        try:
            UUID(candidate)
            return candidate
        except ValueError:
            LOGGER.debug("Ignoring invalid trace identifier: %s", candidate)
    return str(uuid4())


def ensure_trace_id() -> str:
    """Return the active trace identifier, creating one if absent."""

    trace_id = _TRACE_ID_CONTEXT.get()
    if not trace_id:
        trace_id = str(uuid4())
        _TRACE_ID_CONTEXT.set(trace_id)
    return trace_id


def get_trace_context() -> ContextVar[str]:
    """Expose the trace identifier context variable for middleware use."""

    return _TRACE_ID_CONTEXT


def build_error_payload(*, code: str, message: str, details: dict[str, Any], trace_id: str) -> ErrorResponse:
    return ErrorResponse(code=code, message=message, details=details, trace_id=trace_id)


def http_exception_to_response(exc: HTTPException, trace_id: str) -> JSONResponse:
    """Translate an ``HTTPException`` into a JSON response with trace headers."""

    headers = dict(exc.headers or {})
    headers.setdefault(TRACE_ID_HEADER, trace_id)

    default_code = _STATUS_ERROR_CODES.get(exc.status_code, "INTERNAL")
    detail = exc.detail
    if isinstance(detail, dict):
        payload_data = dict(detail)
        payload_data.setdefault("code", default_code)
        payload_data.setdefault("message", "Internal server error.")
        payload_data.setdefault("details", {})
        payload_data["trace_id"] = trace_id
        payload = ErrorResponse.model_validate(payload_data)
    else:
        payload = ErrorResponse(code=default_code, message=str(detail), details={}, trace_id=trace_id)

    return JSONResponse(status_code=exc.status_code, content=payload.model_dump(), headers=headers)


def request_validation_response(exc: RequestValidationError, trace_id: str) -> JSONResponse:
    """Render request validation failures using the shared error model."""

    payload = build_error_payload(
        code="VALIDATION",
        message="Request validation failed.",
        details={"errors": _sanitize_details(list(exc.errors()))},
        trace_id=trace_id,
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=payload.model_dump(),
        headers={TRACE_ID_HEADER: trace_id},
    )


def service_error_response(exc: ServiceError, trace_id: str) -> JSONResponse:
    payload = build_error_payload(code=exc.code, message=exc.message, details=exc.details, trace_id=trace_id)
    return JSONResponse(
        status_code=exc.status_code,
        content=payload.model_dump(),
        headers={TRACE_ID_HEADER: trace_id},
    )


def internal_error_response(trace_id: str) -> JSONResponse:
    """Generate a generic internal error response with trace context."""

    payload = build_error_payload(
        code="INTERNAL",
        message="Internal server error.",
        details={},
        trace_id=trace_id,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=payload.model_dump(),
        headers={TRACE_ID_HEADER: trace_id},
    )


def _sanitize_details(details: Any) -> Any:
    """Convert exception instances inside details into serialisable values."""

    if isinstance(details, Exception):
        return str(details)
    if isinstance(details, dict):
        return {key: _sanitize_details(value) for key, value in details.items()}
    if isinstance(details, (list, tuple)):
        return [_sanitize_details(item) for item in details]
    return details


def raise_service_error(
    *,
    status_code: int | None = None,
    code: str,
    message: str | None,
    details: dict[str, Any],
    diagnostics: DiagnosticLogger | None = None,
) -> NoReturn:
    """Raise a structured ``ServiceError`` and log diagnostics for server faults."""

    safe_details = _sanitize_details(details)
    definition = ERROR_DEFINITIONS.get(code, DEFAULT_ERROR_DEFINITION)
    payload_message = message or definition.message
    final_status = status_code or definition.status_code
    if diagnostics is not None and final_status >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        diagnostics.log(code=code, message=payload_message, details=safe_details)
    raise ServiceError(
        code=code,
        status_code=final_status,
        message=payload_message,
        details=safe_details,
    )


def raise_backup_error(exc: BackupError, *, diagnostics: DiagnosticLogger | None = None) -> NoReturn:
    """Re-raise a domain ``BackupError`` as a ``ServiceError`` for the HTTP layer."""

    raise_service_error(
        status_code=exc.definition.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        diagnostics=diagnostics,
    )


def raise_filesystem_error(
    exc: OSError,
    *,
    message: str,
    details: dict[str, Any],
    diagnostics: DiagnosticLogger | None = None,
) -> NoReturn:
    """Raise an HTTP error that reflects the filesystem failure."""

    fs_details = dict(details)
    fs_details.setdefault("errno", getattr(exc, "errno", None))
    fs_details.setdefault("error", str(exc))
    code = "NOT_FOUND" if isinstance(exc, FileNotFoundError) else "IO_FAILURE"
    raise_service_error(code=code, message=message, details=fs_details, diagnostics=diagnostics)


__all__ = [
    "TRACE_ID_HEADER",
    "build_error_payload",
    "default_error_responses",
    "ensure_trace_id",
    "get_trace_context",
    "http_exception_to_response",
    "internal_error_response",
    "raise_backup_error",
    "raise_filesystem_error",
    "raise_service_error",
    "request_validation_response",
    "resolve_trace_id",
    "service_error_response",
]
