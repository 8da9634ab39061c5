"""Integration tests for /sync routes."""
import pytest
from fastapi.testclient import TestClient

from trailsync.api.deps import get_orchestrator
from trailsync.api.main import create_app
from trailsync.sync.errors import RemoteError


@pytest.fixture(name="client")
def client_fixture(orchestrator):
    app = create_app(auto_sync=False)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as c:
        yield c
    orchestrator.shutdown()


class TestTriggerSync:
    def test_trigger_pushes_and_pulls(self, client, store, remote, run_fields):
        store.record_activity(run_fields)
        remote.seed(name="From Phone")

        resp = client.post("/sync/trigger")

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["status"] == "ok"
        assert data["pushed_success"] == 1
        assert data["pulled_added"] == 1
        assert data["pulled_conflicts"] == 0

    def test_trigger_offline(self, client, connectivity):
        connectivity.set_online(False)
        resp = client.post("/sync/trigger")
        assert resp.status_code == 200
        assert resp.json()["status"] == "offline"
        assert resp.json()["success"] is False

    def test_trigger_reports_entry_errors(self, client, store, remote, run_fields):
        remote.failing["create"] = RemoteError("rejected", status_code=400)
        store.record_activity(run_fields)
        data = client.post("/sync/trigger").json()
        assert data["pushed_failed"] == 1
        assert "rejected" in data["errors"][0]["error"]


class TestForceSync:
    def test_force_sync(self, client, remote):
        remote.seed()
        remote.seed()
        resp = client.post("/sync/force")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Force sync completed", "count": 2}

    def test_force_sync_offline(self, client, connectivity):
        connectivity.set_online(False)
        assert client.post("/sync/force").status_code == 503

    def test_force_sync_remote_failure(self, client, remote):
        remote.failing["list"] = RemoteError("backend down")
        resp = client.post("/sync/force")
        assert resp.status_code == 502
        assert "backend down" in resp.json()["detail"]


class TestSyncStatus:
    def test_status_never_run(self, client):
        resp = client.get("/sync/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "never_run"
        assert data["last_sync"] is None
        assert data["syncing"] is False

    def test_status_after_sync(self, client, store, run_fields):
        store.record_activity(run_fields)
        client.post("/sync/trigger")
        data = client.get("/sync/status").json()
        assert data["status"] == "success"
        assert data["queue_length"] == 0
        assert data["last_sync"] is not None
        assert data["finished_at"] is not None

    def test_queue_listing(self, client, store, run_fields):
        record = store.record_activity(run_fields)
        store.edit_activity(record.id, {"notes": "x"})
        data = client.get("/sync/queue").json()
        assert [e["operation"] for e in data] == ["create", "update"]
        assert data[0]["activity_id"] == record.id


class TestAutoSync:
    def test_disable(self, client, settings_store):
        resp = client.post("/sync/auto", json={"enabled": False})
        assert resp.status_code == 200
        assert resp.json()["enabled"] is False
        assert settings_store.get_auto_sync_enabled() is False
        assert client.get("/sync/status").json()["auto_sync_enabled"] is False

    def test_invalid_interval(self, client):
        assert client.post("/sync/auto", json={"enabled": True, "interval_minutes": 0}).status_code == 422
