"""
API Endpoint Tests

Drives the FastAPI app through TestClient with the sync config and board
client swapped for the in-memory fixtures.
"""

import pytest
from fastapi.testclient import TestClient

from api.routes.sync import get_board_client, get_record_locks, get_sync_config
from api.server import create_app
from conftest import BOARD_ID
from sync.batch import shared_locks


@pytest.fixture
def app(sync_config, board_client):
    app = create_app()
    app.dependency_overrides[get_sync_config] = lambda: sync_config
    app.dependency_overrides[get_board_client] = lambda: board_client
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "memory" in body["services"]["connectors"]
        assert "monday" in body["services"]["connectors"]

    def test_live(self, client):
        assert client.get("/live").json() == {"status": "alive"}

    def test_ready_with_bundled_config(self, client, monkeypatch):
        monkeypatch.delenv("SYNC_CONFIG_PATH", raising=False)
        assert client.get("/ready").json() == {"status": "ready"}

    def test_not_ready_with_missing_config(self, client, monkeypatch, tmp_path):
        monkeypatch.setenv("SYNC_CONFIG_PATH", str(tmp_path / "missing.json"))
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestSyncEndpoints:

    def test_batch(self, client, record_data, board_client):
        response = client.post("/sync/batch", json={"records": [record_data], "batch_id": "batch-api"})

        assert response.status_code == 200
        body = response.json()
        assert body["batch_id"] == "batch-api"
        assert body["summary"]["created"] == 1
        outcome = body["outcomes"][0]
        assert outcome["status"] == "SUCCEEDED"
        assert outcome["item_id"] == board_client.items(BOARD_ID)[0].id

    def test_record_failures_do_not_fail_request(self, client, record_data):
        records = [record_data, {"projectId": "123"}, {**record_data, "projectId": "999"}]

        response = client.post("/sync/batch", json={"records": records})

        assert response.status_code == 200
        assert response.json()["summary"] == {
            "total": 3, "succeeded": 1, "skipped": 1, "failed": 1, "created": 1, "updated": 0,
        }

    def test_requests_share_key_locks(self):
        assert get_record_locks() is shared_locks()
        assert get_record_locks() is get_record_locks()

    def test_malformed_body(self, client):
        assert client.post("/sync/batch", json={"rows": []}).status_code == 422

    def test_preview(self, client, record_data, board_client):
        response = client.post("/sync/preview", json={"records": [record_data]})

        assert response.status_code == 200
        planned = response.json()["records"][0]
        assert planned["status"] == "PLANNED"
        assert planned["action"]["kind"] == "create"
        assert planned["action"]["column_values"]["numbers9__1"] == 111
        assert board_client.mutation_calls() == []

    def test_metrics(self, client, record_data):
        client.post("/sync/batch", json={"records": [record_data]})

        summary = client.get("/sync/metrics").json()

        assert summary["batches"]["completed"] >= 1
        assert summary["records"]["succeeded"] >= 1

    def test_missing_token_is_unavailable(self, sync_config, record_data, monkeypatch):
        monkeypatch.setattr("sync.config.load_environment", lambda: None)
        monkeypatch.delenv("MONDAY_API_TOKEN", raising=False)
        app = create_app()
        app.dependency_overrides[get_sync_config] = lambda: sync_config

        with TestClient(app) as client:
            response = client.post("/sync/batch", json={"records": [record_data]})

        assert response.status_code == 503
        assert "MONDAY_API_TOKEN" in response.json()["detail"]
