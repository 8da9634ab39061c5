"""Tests for RemoteClient over httpx.MockTransport. No real network calls."""
import json
from datetime import datetime

import httpx
import pytest

from trailsync.remote.client import RemoteClient
from trailsync.sync.errors import RemoteError, RemoteNotFoundError, UnreachableError

BASE = "http://backend.test/api"


def _raw(remote_id="srv-1", **overrides):
    raw = {
        "_id": remote_id,
        "type": "run",
        "name": "Morning Run",
        "startTime": "2025-01-15T07:30:00.000Z",
        "endTime": "2025-01-15T08:00:00.000Z",
        "duration": 1800,
        "distance": 3000,
        "lastModified": "2025-01-15T08:01:00.000Z",
    }
    raw.update(overrides)
    return raw


def _client(handler, api_key="secret") -> RemoteClient:
    return RemoteClient(
        base_url=BASE,
        api_key=api_key,
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_healthy(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"status": "OK"})

        async with _client(handler) as client:
            assert await client.health_check() == {"status": "OK"}
        assert seen[0].url.path == "/api/health"
        assert seen[0].headers["X-API-Key"] == "secret"

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self):
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(UnreachableError):
                await client.health_check()

    @pytest.mark.asyncio
    async def test_connection_error_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(UnreachableError):
                await client.health_check()

    @pytest.mark.asyncio
    async def test_no_key_header_when_unset(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"status": "OK"})

        async with _client(handler, api_key="") as client:
            await client.health_check()
        assert "X-API-Key" not in seen[0].headers


class TestActivities:
    @pytest.mark.asyncio
    async def test_list_unwraps_envelope_and_sends_filters(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": [_raw("a"), _raw("b")]})

        async with _client(handler) as client:
            records = await client.list_activities(
                modified_since=datetime(2025, 1, 15, 8, 0), limit=50
            )

        assert [r.remote_id for r in records] == ["a", "b"]
        params = seen[0].url.params
        assert params["modifiedSince"] == "2025-01-15T08:00:00.000Z"
        assert params["limit"] == "50"

    @pytest.mark.asyncio
    async def test_list_without_filters(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": []})

        async with _client(handler) as client:
            assert await client.list_activities() == []
        assert "modifiedSince" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_create_posts_wire_payload(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"success": True, "data": _raw("new-id")})

        async with _client(handler) as client:
            created = await client.create_activity({
                "kind": "run",
                "start_time": datetime(2025, 1, 15, 7, 30),
                "end_time": datetime(2025, 1, 15, 8, 0),
                "duration_seconds": 1800.0,
            })

        assert created.remote_id == "new-id"
        assert created.last_modified == datetime(2025, 1, 15, 8, 1)
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/activities"
        body = json.loads(request.content)
        assert body["type"] == "run"
        assert body["startTime"] == "2025-01-15T07:30:00.000Z"

    @pytest.mark.asyncio
    async def test_update_puts_patch(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": _raw("srv-1", notes="hills")})

        async with _client(handler) as client:
            updated = await client.update_activity("srv-1", {"notes": "hills"})

        assert updated.notes == "hills"
        assert seen[0].method == "PUT"
        assert seen[0].url.path == "/api/activities/srv-1"
        assert json.loads(seen[0].content) == {"notes": "hills"}

    @pytest.mark.asyncio
    async def test_delete(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "message": "Activity deleted"})

        async with _client(handler) as client:
            await client.delete_activity("srv-1")
        assert seen[0].method == "DELETE"

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with _client(lambda request: httpx.Response(404, json={"error": "Activity not found"})) as client:
            with pytest.raises(RemoteNotFoundError):
                await client.delete_activity("missing")

    @pytest.mark.asyncio
    async def test_server_error_carries_status_and_detail(self):
        def handler(request):
            return httpx.Response(500, json={"success": False, "error": "Server error"})

        async with _client(handler) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.create_activity({"kind": "run"})
        assert exc_info.value.status_code == 500
        assert "Server error" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_is_remote_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(RemoteError):
                await client.list_activities()

    @pytest.mark.asyncio
    async def test_list_skips_invalid_records(self):
        def handler(request):
            body = {"success": True, "data": [_raw("good"), _raw("bad", type="swim")]}
            return httpx.Response(200, json=body)

        async with _client(handler) as client:
            records = await client.list_activities()

        assert [r.remote_id for r in records] == ["good"]
        assert records.skipped == 1
