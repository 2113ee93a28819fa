"""Application wiring tests: health, trace headers and verifier integration."""

from __future__ import annotations

import uuid
from pathlib import Path

from fastapi.testclient import TestClient

from qreport.backup.app import SERVICE_VERSION, create_app
from qreport.backup.config import BackupSettings
from qreport.backup.http import TRACE_ID_HEADER


def test_health_reports_disabled_verifier(test_client) -> None:
    response = test_client.get("/api/v1/healthz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["version"] == SERVICE_VERSION
    assert payload["backup_enabled"] is False
    assert payload["backup_status"] == "warning"


def test_trace_id_is_echoed_or_generated(test_client) -> None:
    trace_id = str(uuid.uuid4())

    echoed = test_client.get("/api/v1/healthz", headers={TRACE_ID_HEADER: trace_id})
    generated = test_client.get("/api/v1/healthz", headers={TRACE_ID_HEADER: "bogus"})

    assert echoed.headers[TRACE_ID_HEADER] == trace_id
    assert generated.headers[TRACE_ID_HEADER] != "bogus"
    uuid.UUID(generated.headers[TRACE_ID_HEADER])


def test_service_index_and_unknown_route(test_client) -> None:
    index = test_client.get("/")
    missing = test_client.get("/api/v1/nope")

    assert index.json()["api_base"] == "/api/v1"
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


def test_create_app_prepares_data_directories(tmp_path: Path) -> None:
    settings = BackupSettings(data_dir=tmp_path)

    create_app(settings)

    assert settings.backups_dir.is_dir()
    assert settings.share_dir.is_dir()
    assert settings.state_dir.is_dir()


def test_health_reflects_verifier_report(tmp_path: Path) -> None:
    settings = BackupSettings(data_dir=tmp_path, verifier_enabled=True)
    app = create_app(settings)

    with TestClient(app) as client:
        verifier = app.state.verification_scheduler
        assert verifier is not None
        verifier.run_once()
        response = client.get("/api/v1/healthz")

    payload = response.json()
    assert payload["backup_enabled"] is True
    assert payload["backup_status"] == "ok"
    assert payload["backup_checked"] == 0
    assert (settings.state_dir / "last_verification.json").exists()
