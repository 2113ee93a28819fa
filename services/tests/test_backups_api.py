"""API tests for the backup listing, deletion, verification and share endpoints."""

from __future__ import annotations

import asyncio
from pathlib import Path

from qreport.backup.backup_service import BackupService, DirectorySnapshotSource
from qreport.backup.models import DatabaseBackup
from qreport.backup.progress import final_event


def _create_backup(test_client, description: str | None = None) -> tuple[str, Path]:
    state = test_client.app.state
    settings = state.settings
    service = BackupService(
        settings=settings,
        layout=state.layout,
        serializer=state.serializer,
        diagnostics=state.diagnostics,
    )
    source = DirectorySnapshotSource(
        photos_dir=settings.photos_dir,
        signatures_dir=settings.signatures_dir,
        database=DatabaseBackup(clients=[{"id": 1}, {"id": 2}]),
    )
    result = final_event(service.create_backup(source, description=description))
    assert result.kind == "completed"
    backup_dir = Path(result.output_path).parent
    backup_id = state.layout.load(backup_dir).metadata.id
    return backup_id, backup_dir


def test_list_backups_returns_camel_case_infos(test_client) -> None:
    backup_id, backup_dir = _create_backup(test_client, description="nightly")

    response = test_client.get("/api/v1/backups")

    assert response.status_code == 200
    payload = response.json()
    assert len(payload) == 1
    assert payload[0]["id"] == backup_id
    assert payload[0]["description"] == "nightly"
    assert payload[0]["recordCount"] == 2
    assert payload[0]["dirPath"] == str(backup_dir)


def test_list_backups_rejects_unknown_sort(test_client) -> None:
    response = test_client.get("/api/v1/backups?sort=sideways")

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION"


def test_delete_backup_and_missing_backup(test_client) -> None:
    backup_id, backup_dir = _create_backup(test_client)

    response = test_client.delete(f"/api/v1/backups/{backup_id}")

    assert response.status_code == 200
    assert response.json() == {"backupId": backup_id, "deletedCount": 1, "failures": []}
    assert not backup_dir.exists()

    missing = test_client.delete(f"/api/v1/backups/{backup_id}")
    assert missing.status_code == 404
    body = missing.json()
    assert body["code"] == "NOT_FOUND"
    assert body["trace_id"]


def test_verify_backup_returns_report(test_client) -> None:
    backup_id, backup_dir = _create_backup(test_client)

    response = test_client.get(f"/api/v1/backups/{backup_id}/verify")

    assert response.status_code == 200
    report = response.json()
    assert report["status"] == "ok"
    assert report["backup_id"] == backup_id
    assert report["path"] == str(backup_dir)


def test_share_backup_creates_bundle_and_schedules_cleanup(test_client) -> None:
    backup_id, _ = _create_backup(test_client)

    response = test_client.post("/api/v1/backups/share", json={"backupId": backup_id})

    assert response.status_code == 201
    payload = response.json()
    assert payload["backupId"] == backup_id
    assert Path(payload["bundlePath"]).exists()
    assert payload["entryCount"] == 5
    assert test_client.app.state.cleanup_scheduler.pending_jobs()


def test_share_unknown_backup_is_not_found(test_client) -> None:
    response = test_client.post("/api/v1/backups/share", json={"backupId": "00000000"})

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_share_requires_backup_id(test_client) -> None:
    response = test_client.post("/api/v1/backups/share", json={})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION"


def test_filesystem_heavy_endpoints_run_in_worker_threads(test_client, monkeypatch) -> None:
    backup_id, _ = _create_backup(test_client)
    offloaded: list[str] = []
    run_in_thread = asyncio.to_thread

    async def _recording_to_thread(func, /, *args, **kwargs):
        offloaded.append(func.__name__)
        return await run_in_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", _recording_to_thread)

    assert test_client.get("/api/v1/backups").status_code == 200
    assert test_client.get(f"/api/v1/backups/{backup_id}/verify").status_code == 200
    assert test_client.post("/api/v1/backups/share", json={"backupId": backup_id}).status_code == 201
    assert test_client.delete(f"/api/v1/backups/{backup_id}").status_code == 200

    assert offloaded == ["list", "verify_backup", "create_share_bundle", "delete"]
