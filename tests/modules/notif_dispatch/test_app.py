"""Tests for the dispatch FastAPI endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from modules.notif_dispatch.errors import StoreError
from modules.notif_dispatch.main import app
from modules.notif_dispatch.models import Recipient
from shared.config import Settings, get_settings


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def app_settings(settings):
    app.dependency_overrides[get_settings] = lambda: settings
    yield settings
    app.dependency_overrides.clear()


@pytest.fixture
def wired(app_settings, dispatcher):
    """Route the endpoint to the in-memory dispatcher."""

    @asynccontextmanager
    async def _open(settings):
        yield dispatcher

    with patch("modules.notif_dispatch.worker.open_dispatcher", _open):
        yield dispatcher


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _assert_cors(resp):
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "x-dispatch-secret" in resp.headers["access-control-allow-headers"]
    assert resp.headers["access-control-allow-methods"] == "POST, OPTIONS"


# ---------------------------------------------------------------------------
# Health / preflight / methods
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_preflight(client):
    resp = await client.options("/")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    _assert_cors(resp)


@pytest.mark.asyncio
async def test_other_methods_rejected(client):
    resp = await client.get("/")
    assert resp.status_code == 405
    assert resp.json() == {"ok": False, "error": "METHOD_NOT_ALLOWED"}
    _assert_cors(resp)


@pytest.mark.asyncio
async def test_head_is_rejected_like_other_methods(client):
    resp = await client.head("/")
    assert resp.status_code == 405
    _assert_cors(resp)


# ---------------------------------------------------------------------------
# Pre-loop failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_wrong_secret_is_unauthorized(client, wired, app_settings):
    app_settings.dispatch_secret = "s3cret"

    resp = await client.post("/", json={}, headers={"x-dispatch-secret": "nope"})

    assert resp.status_code == 401
    assert resp.json() == {"ok": False, "error": "UNAUTHORIZED"}
    _assert_cors(resp)
    assert wired.store.claim_calls == []


@pytest.mark.asyncio
async def test_missing_secret_header_is_unauthorized(client, wired, app_settings):
    app_settings.dispatch_secret = "s3cret"

    resp = await client.post("/", json={})

    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_matching_secret_passes(client, wired, app_settings):
    app_settings.dispatch_secret = "s3cret"

    resp = await client.post("/", json={}, headers={"x-dispatch-secret": " s3cret "})

    assert resp.status_code == 200
    assert wired.store.claim_calls == [20]


@pytest.mark.asyncio
async def test_missing_store_config(client, wired):
    app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None)

    resp = await client.post("/", json={"limit": 5})

    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "MISSING_SUPABASE_ENV"}
    _assert_cors(resp)
    assert wired.store.claim_calls == []


@pytest.mark.asyncio
async def test_claim_failure(client, wired):
    wired.store.claim_error = StoreError(503, "no upstream")

    resp = await client.post("/", json={})

    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "CLAIM_FAILED: SUPABASE_HTTP_503: no upstream"}
    _assert_cors(resp)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("body,expected_limit", [
    ({"limit": 5}, 5),
    ({"limit": 500}, 100),
    ({"limit": 0}, 1),
    ({"limit": "10"}, 20),
    ({}, 20),
    ([1, 2], 20),
])
async def test_limit_handling(client, wired, body, expected_limit):
    resp = await client.post("/", json=body)

    assert resp.status_code == 200
    assert wired.store.claim_calls == [expected_limit]


@pytest.mark.asyncio
async def test_invalid_json_uses_default_limit(client, wired):
    resp = await client.post("/", content=b"{not json", headers={"content-type": "application/json"})

    assert resp.status_code == 200
    assert wired.store.claim_calls == [20]


@pytest.mark.asyncio
async def test_empty_queue(client, wired):
    resp = await client.post("/", json={})

    assert resp.json() == {"ok": True, "claimed": 0, "processed": 0, "errors": []}
    _assert_cors(resp)


@pytest.mark.asyncio
async def test_row_failures_do_not_change_status(client, wired, directory, mock_http, helpers):
    directory.static = [Recipient(user_id="u1")]
    directory.register("u1", "tok-u1")
    wired.store.add(id=1, type="VENTA_VISIBLE_NUEVOS", payload={})
    wired.store.add(id=2, type="VENTA_FACTURADA", payload={})
    mock_http.post.side_effect = [helpers.make_response(500, "expo down")]

    resp = await client.post("/", json={"limit": 10})

    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["claimed"] == 2
    assert data["processed"] == 0
    assert data["errors"] == [
        {"outbox_id": "1", "error": "EXPO_HTTP_500: expo down"},
        {"outbox_id": "2", "error": "MISSING_VENTA_ID"},
    ]
