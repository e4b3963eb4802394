"""Thin async client for the Supabase REST (PostgREST) and RPC endpoints."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from modules.notif_dispatch.errors import StoreError

logger = structlog.get_logger()

QueryParams = list[tuple[str, str]]


def _error_message(raw: str) -> str:
    """Build a readable message from a PostgREST error body."""
    try:
        body = json.loads(raw)
    except ValueError:
        return raw
    if not isinstance(body, dict):
        return raw

    msg = str(body.get("message") or raw)
    if body.get("details"):
        msg += f" details={str(body['details'])[:200]}"
    if body.get("hint"):
        msg += f" hint={str(body['hint'])[:200]}"
    return msg


class SupabaseClient:
    """Service-role client for RPC calls and filtered table reads."""

    def __init__(self, url: str, service_key: str, http: httpx.AsyncClient):
        self.base_url = url.rstrip("/")
        self._http = http
        self._headers = {
            "apikey": service_key,
            "authorization": f"Bearer {service_key}",
            "accept": "application/json",
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._http.request(
            method, f"{self.base_url}{path}", headers=self._headers, **kwargs
        )
        raw = resp.text
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning("supabase_http_error", path=path, status=resp.status_code)
            raise StoreError(resp.status_code, _error_message(raw))
        if not raw:
            return []
        return json.loads(raw)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def rpc(self, fn: str, args: dict | None = None) -> Any:
        """Call a Postgres function exposed under /rest/v1/rpc."""
        return await self._request("POST", f"/rest/v1/rpc/{fn}", json=args or {})

    async def select(self, table: str, params: QueryParams) -> list[dict]:
        """Read rows from a table. ``params`` may repeat keys (PostgREST filters)."""
        rows = await self._request("GET", f"/rest/v1/{table}", params=params)
        return rows if isinstance(rows, list) else []
