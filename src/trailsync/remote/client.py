"""
Async HTTP client for the authoritative activity store.

Thin wrapper over httpx.AsyncClient. Every call carries the configured
timeout; a hung request fails with httpx.TimeoutException, which surfaces
here as RemoteError so the orchestrator can count it against the entry.

The server wraps payloads as {"success": true, "data": ...}; this module
unwraps them and maps records through the normalizer so callers only ever
see RemoteActivity objects.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from trailsync.config import get_settings
from trailsync.remote.normalizer import (
    RemoteActivity,
    RemoteActivityList,
    format_timestamp,
    normalize_remote_activities,
    normalize_remote_activity,
    to_remote_payload,
)
from trailsync.sync.errors import RemoteError, RemoteNotFoundError, UnreachableError

logger = logging.getLogger(__name__)


class RemoteClient:
    """
    Client for the /health and /activities endpoints.

    Use as an async context manager, or call aclose() when done.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root, e.g. "http://localhost:5000/api". Defaults to
                      settings.remote_api_url.
            api_key: Sent as X-API-Key when non-empty. Defaults to settings.
            timeout: Per-request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        settings = get_settings()
        headers = {"Content-Type": "application/json"}
        key = settings.remote_api_key if api_key is None else api_key
        if key:
            headers["X-API-Key"] = key
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.remote_api_url).rstrip("/"),
            timeout=timeout if timeout is not None else settings.remote_timeout_seconds,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def health_check(self) -> Dict[str, Any]:
        """
        Probe GET /health.

        Raises:
            UnreachableError: on any transport error or non-2xx status.
        """
        try:
            response = await self._client.get("/health")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UnreachableError("Backend is not reachable") from exc
        return response.json()

    async def list_activities(
        self,
        modified_since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> RemoteActivityList:
        """
        Fetch activities, optionally only those modified after ``modified_since``.

        Records that fail validation are logged and left out; the result
        carries how many were skipped.
        """
        params: Dict[str, Any] = {}
        if modified_since is not None:
            params["modifiedSince"] = format_timestamp(modified_since)
        if limit is not None:
            params["limit"] = limit
        data = await self._request("GET", "/activities", params=params)
        return normalize_remote_activities(data or [])

    async def create_activity(self, fields: Dict[str, Any]) -> RemoteActivity:
        data = await self._request("POST", "/activities", json=to_remote_payload(fields))
        return normalize_remote_activity(data)

    async def update_activity(self, remote_id: str, patch: Dict[str, Any]) -> RemoteActivity:
        data = await self._request(
            "PUT", f"/activities/{remote_id}", json=to_remote_payload(patch)
        )
        return normalize_remote_activity(data)

    async def delete_activity(self, remote_id: str) -> None:
        """Delete a remote record.

        Raises:
            RemoteNotFoundError: if the server has no such record.
        """
        await self._request("DELETE", f"/activities/{remote_id}")

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {url} failed: {exc}") from exc

        if response.status_code == 404:
            raise RemoteNotFoundError(f"{method} {url}: not found", status_code=404)
        if response.status_code in (401, 403):
            logger.error("Authentication failed for %s %s", method, url)
        if response.is_error:
            raise RemoteError(
                f"{method} {url} returned {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        body = response.json()
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body)
    return str(body)
