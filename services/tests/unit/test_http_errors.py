"""Unit tests for shared HTTP error helpers."""

from __future__ import annotations

import ast
import json
from pathlib import Path

import pytest
from fastapi.exceptions import RequestValidationError

import qreport.backup as backup_package
from qreport.backup.diagnostics import DiagnosticLogger
from qreport.backup.errors import (
    ERROR_DEFINITIONS,
    CorruptError,
    IOFailureError,
    NotFoundError,
    ServiceError,
    error_for_code,
)
from qreport.backup.http import (
    TRACE_ID_HEADER,
    internal_error_response,
    raise_backup_error,
    request_validation_response,
    resolve_trace_id,
    service_error_response,
)


def _response_json(response) -> dict[str, object]:
    return json.loads(response.body.decode("utf-8"))


def test_request_validation_response_envelopes_errors() -> None:
    trace_id = "trace-123"
    exc = RequestValidationError(
        [
            {
                "loc": ("body", "backupId"),
                "msg": "field required",
                "type": "missing",
            }
        ]
    )

    response = request_validation_response(exc, trace_id)
    payload = _response_json(response)

    assert response.status_code == 400
    assert set(payload.keys()) == {"code", "message", "details", "trace_id"}
    assert payload["code"] == "VALIDATION"
    assert payload["trace_id"] == trace_id
    assert response.headers[TRACE_ID_HEADER] == trace_id


def test_internal_error_response_has_expected_shape() -> None:
    response = internal_error_response("trace-456")
    payload = _response_json(response)

    assert response.status_code == 500
    assert payload == {
        "code": "INTERNAL",
        "message": "Internal server error.",
        "details": {},
        "trace_id": "trace-456",
    }


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (NotFoundError("no backup"), 404),
        (CorruptError("bad json"), 422),
        (IOFailureError("disk full"), 500),
    ],
)
def test_backup_errors_map_to_status_codes(error, status_code: int) -> None:
    with pytest.raises(ServiceError) as captured:
        raise_backup_error(error)

    assert captured.value.status_code == status_code
    assert captured.value.code == error.code
    response = service_error_response(captured.value, "trace-789")
    assert response.status_code == status_code
    assert _response_json(response)["message"] == error.message


def test_server_faults_are_written_to_diagnostics(tmp_path) -> None:
    diagnostics = DiagnosticLogger(tmp_path)

    with pytest.raises(ServiceError):
        raise_backup_error(IOFailureError("disk full"), diagnostics=diagnostics)
    with pytest.raises(ServiceError):
        raise_backup_error(NotFoundError("no backup"), diagnostics=diagnostics)

    written = list((tmp_path / "diagnostics").glob("*.json"))
    assert len(written) == 1
    assert "io_failure" in written[0].name


def test_error_for_code_returns_matching_subclass() -> None:
    error = error_for_code("CORRUPT", "broken", details={"path": "x"})

    assert isinstance(error, CorruptError)
    assert error.details == {"path": "x"}
    assert type(error_for_code("SOMETHING_ELSE", "x")).__name__ == "BackupError"


def test_resolve_trace_id_replaces_invalid_values() -> None:
    valid = "0b4f6a8e-3c1d-4e5f-9a7b-2c3d4e5f6a7b"

    assert resolve_trace_id(valid) == valid
    assert resolve_trace_id("not-a-uuid") != "not-a-uuid"
    assert resolve_trace_id(None)


def test_error_definitions_use_plain_status_codes() -> None:
    assert ERROR_DEFINITIONS["NOT_FOUND"].status_code == 404
    assert ERROR_DEFINITIONS["PAYLOAD_TOO_LARGE"].status_code == 413
    conflict = ServiceError(code="CONFLICT", status_code=ERROR_DEFINITIONS["CONFLICT"].status_code, message="x")
    assert type(conflict.status_code) is int
    assert conflict.status_code == 409


def test_engine_modules_do_not_import_web_framework() -> None:
    package_root = Path(backup_package.__file__).parent
    web_layer = {"app.py", "http.py", "middleware.py", "__main__.py", "logging_config.py"}
    offenders = []
    for module in package_root.rglob("*.py"):
        if module.name in web_layer or "routers" in module.parts:
            continue
        tree = ast.parse(module.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                names = [alias.name for alias in node.names]
            elif isinstance(node, ast.ImportFrom):
                names = [node.module or ""]
            else:
                continue
            if any(name.split(".")[0] in {"fastapi", "starlette", "uvicorn"} for name in names):
                offenders.append(module.relative_to(package_root).as_posix())

    assert offenders == []
