from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from qreport.backup.http import TRACE_ID_HEADER
from qreport.backup.middleware import BodySizeLimitMiddleware


def test_body_size_limit_middleware_rejects_large_payload() -> None:
    app = FastAPI()
    app.add_middleware(BodySizeLimitMiddleware, limit=128)

    @app.post("/echo")
    async def echo(payload: dict[str, str]) -> dict[str, str]:  # pragma: no cover - request should fail
        return payload

    client = TestClient(app)
    response = client.post("/echo", json={"backupId": "x" * 512})

    assert response.status_code == 413
    payload = response.json()
    assert set(payload) == {"code", "message", "details", "trace_id"}
    assert payload["code"] == "PAYLOAD_TOO_LARGE"
    assert payload["details"] == {"limit_bytes": 128}
    assert response.headers[TRACE_ID_HEADER] == payload["trace_id"]


def test_body_size_limit_middleware_allows_small_payload() -> None:
    app = FastAPI()
    app.add_middleware(BodySizeLimitMiddleware, limit=1024)

    @app.post("/echo")
    async def echo(payload: dict[str, str]) -> dict[str, str]:
        return payload

    client = TestClient(app)
    response = client.post("/echo", json={"backupId": "ok"})

    assert response.status_code == 200
    assert response.json() == {"backupId": "ok"}


def test_body_size_limit_middleware_rejects_zero_limit() -> None:
    with pytest.raises(ValueError):
        BodySizeLimitMiddleware(FastAPI(), limit=0)
