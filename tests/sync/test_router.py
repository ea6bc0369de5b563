"""Tests for the sync control HTTP endpoints.

The router is mounted on a bare FastAPI app backed by in-memory services
without an engine, so commands only record intent.
"""

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from src.catalog_sync.config import GlobalSettings, ProfileSettings, SettingsRegistry
from src.catalog_sync.sync.api.dependencies import set_services
from src.catalog_sync.sync.api.router import router
from src.catalog_sync.sync.services import build_services

API_KEY = "test-api-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture(autouse=True)
def auth_env(monkeypatch):
    monkeypatch.setenv("API_KEY", API_KEY)
    monkeypatch.delenv("DISABLE_AUTH", raising=False)


@pytest_asyncio.fixture
async def services():
    registry = SettingsRegistry(GlobalSettings(), {"trial": ProfileSettings(scope="trial", limit=20)})
    services = await build_services(registry, with_engine=False)
    set_services(services)
    yield services
    set_services(None)


@pytest_asyncio.fixture
async def client(services):
    app = FastAPI()
    app.include_router(router)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestAuthentication:
    async def test_missing_key(self, client):
        response = await client.get("/api/sync/default/status")

        assert response.status_code == 401

    async def test_wrong_key(self, client):
        response = await client.get("/api/sync/default/status", headers={"X-API-Key": "nope"})

        assert response.status_code == 401

    async def test_api_key_not_configured(self, client, monkeypatch):
        monkeypatch.delenv("API_KEY")

        response = await client.get("/api/sync/default/status", headers=HEADERS)

        assert response.status_code == 500

    async def test_auth_disabled(self, client, monkeypatch):
        monkeypatch.setenv("DISABLE_AUTH", "true")

        response = await client.get("/api/sync/default/status")

        assert response.status_code == 200

    async def test_health_is_public(self, client):
        response = await client.get("/api/sync/health")

        assert response.status_code == 200
        assert response.json()["storage"] == "memory"


class TestCommands:
    async def test_start(self, client):
        response = await client.post("/api/sync/default/start", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["accepted"] is True
        assert body["state"]["status"] == "running"
        assert body["state"]["batch_size"] == 10

    async def test_start_with_body(self, client):
        response = await client.post(
            "/api/sync/default/start",
            headers=HEADERS,
            json={"limit": 5, "incremental": True},
        )

        state = response.json()["state"]
        assert state["limit"] == 5
        assert state["sync_type"] == "full"

    async def test_profile_limit(self, client):
        response = await client.post("/api/sync/trial/start", headers=HEADERS)

        assert response.json()["state"]["limit"] == 20

    async def test_second_start_conflicts(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)

        response = await client.post("/api/sync/default/start", headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["accepted"] is False
        assert "already running" in response.json()["message"]

    async def test_negative_limit_is_rejected(self, client):
        response = await client.post("/api/sync/default/start", headers=HEADERS, json={"limit": -1})

        assert response.status_code == 422

    async def test_invalid_scope(self, client):
        response = await client.post("/api/sync/bad scope!/start", headers=HEADERS)

        assert response.status_code == 422

    async def test_pause_resume_cancel(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)

        paused = await client.post("/api/sync/default/pause", headers=HEADERS)
        assert paused.json()["state"]["status"] == "pausing"

        cancelled = await client.post("/api/sync/default/cancel", headers=HEADERS)
        assert cancelled.status_code == 200
        assert cancelled.json()["state"]["status"] == "stopping"

    async def test_pause_without_run(self, client):
        response = await client.post("/api/sync/default/pause", headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["message"] == "No sync has run for 'default'"

    async def test_resume_running_sync_conflicts(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)

        response = await client.post("/api/sync/default/resume", headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["message"] == "Cannot resume a sync that is running"
        assert response.json()["state"]["status"] == "running"

    async def test_reset_active_sync_conflicts(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)

        response = await client.post("/api/sync/default/reset", headers=HEADERS)

        assert response.status_code == 409


class TestQueries:
    async def test_status_of_unknown_scope(self, client):
        response = await client.get("/api/sync/never/status", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"scope": "never", "status": "idle", "state": None}

    async def test_status_after_start(self, client):
        started = await client.post("/api/sync/default/start", headers=HEADERS)

        response = await client.get("/api/sync/default/status", headers=HEADERS)

        body = response.json()
        assert body["status"] == "running"
        assert body["state"]["run_id"] == started.json()["state"]["run_id"]

    async def test_logs(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)
        await client.post("/api/sync/default/pause", headers=HEADERS)

        response = await client.get("/api/sync/default/logs", headers=HEADERS, params={"limit": 10})

        messages = [item["message"] for item in response.json()["items"]]
        assert messages == ["Pause requested", "Started full sync"]

    async def test_logs_level_filter(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)

        response = await client.get("/api/sync/default/logs", headers=HEADERS, params={"level": "error"})

        assert response.json()["items"] == []

    async def test_logs_limit_bounds(self, client):
        response = await client.get("/api/sync/default/logs", headers=HEADERS, params={"limit": 0})

        assert response.status_code == 422

    async def test_history(self, client):
        await client.post("/api/sync/default/start", headers=HEADERS)
        await client.post("/api/sync/trial/start", headers=HEADERS)

        scoped = await client.get("/api/sync/default/history", headers=HEADERS)
        everything = await client.get("/api/sync/history", headers=HEADERS)

        assert [r["scope"] for r in scoped.json()["items"]] == ["default"]
        assert {r["scope"] for r in everything.json()["items"]} == {"default", "trial"}

    async def test_health_lists_active_scopes(self, client):
        await client.post("/api/sync/trial/start", headers=HEADERS)

        response = await client.get("/api/sync/health")

        assert response.json()["active_scopes"] == ["trial"]


class TestServicesMissing:
    async def test_uninitialized_service(self):
        set_services(None)
        app = FastAPI()
        app.include_router(router)

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/sync/default/status", headers=HEADERS)

        assert response.status_code == 503
