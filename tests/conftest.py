"""Shared test fixtures for the dispatcher test suite.

Provides in-memory fakes for the outbox store and the directory, plus a
mocked HTTP client for the push gateway, so the dispatch loop runs without
Supabase or Expo.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from modules.notif_dispatch.directory import Directory
from modules.notif_dispatch.dispatcher import Dispatcher
from modules.notif_dispatch.models import OutboxRow, PushTokenRegistration, Recipient
from modules.notif_dispatch.push_client import ExpoPushClient
from modules.notif_dispatch.store import ClaimStore, parse_claimed_rows
from shared.config import Settings


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class InMemoryClaimStore(ClaimStore):
    """Queue fake: claim hands out pending rows once, terminal marks are recorded."""

    def __init__(self, rows: list[dict] | None = None):
        self.pending: list[dict] = list(rows or [])
        self.claim_calls: list[int] = []
        self.processed: list[str] = []
        self.errored: dict[str, str] = {}
        self.claim_error: Exception | None = None
        self.mark_error_error: Exception | None = None

    def add(self, **row) -> None:
        self.pending.append(row)

    async def claim(self, limit: int) -> list[OutboxRow]:
        self.claim_calls.append(limit)
        if self.claim_error:
            raise self.claim_error
        batch, self.pending = self.pending[:limit], self.pending[limit:]
        return parse_claimed_rows(batch)

    async def mark_processed(self, outbox_id: str) -> None:
        self.processed.append(outbox_id)

    async def mark_error(self, outbox_id: str, error: str) -> None:
        if self.mark_error_error:
            raise self.mark_error_error
        self.errored[outbox_id] = error


class FakeDirectory(Directory):
    """Directory fake with call counters for every read."""

    def __init__(self):
        self.static: list[Recipient] = []
        self.by_sale: dict[str, list[Recipient]] = {}
        self.profiles: list[Recipient] = []
        self.registrations: list[PushTokenRegistration] = []
        self.client_names: dict[str, str] = {}
        self.client_name_error: Exception | None = None
        self.calls: dict[str, int] = {
            "static_recipients": 0,
            "sale_recipients": 0,
            "profiles_page": 0,
            "push_tokens": 0,
            "sale_client_name": 0,
        }
        self.token_batches: list[list[str]] = []

    def register(self, user_id: str, token: str, device_id: str | None = None, enabled: bool = True):
        self.registrations.append(
            PushTokenRegistration(
                user_id=user_id, device_id=device_id, expo_token=token, enabled=enabled
            )
        )

    async def static_recipients(self) -> list[Recipient]:
        self.calls["static_recipients"] += 1
        return list(self.static)

    async def sale_recipients(self, venta_id: str) -> list[Recipient]:
        self.calls["sale_recipients"] += 1
        return list(self.by_sale.get(venta_id, []))

    async def profiles_page(self, roles: list[str], limit: int, offset: int) -> list[Recipient]:
        self.calls["profiles_page"] += 1
        matching = [p for p in self.profiles if p.role in roles]
        return matching[offset:offset + limit]

    async def push_tokens(
        self, user_ids: list[str], require_device: bool = False
    ) -> list[PushTokenRegistration]:
        self.calls["push_tokens"] += 1
        self.token_batches.append(list(user_ids))
        return [
            r for r in self.registrations
            if r.user_id in user_ids
            and r.enabled
            and r.expo_token
            and (r.device_id or not require_device)
        ]

    async def sale_client_name(self, venta_id: str) -> str:
        self.calls["sale_client_name"] += 1
        if self.client_name_error:
            raise self.client_name_error
        return self.client_names.get(venta_id, "")

    @property
    def resolver_calls(self) -> int:
        return (
            self.calls["static_recipients"]
            + self.calls["sale_recipients"]
            + self.calls["profiles_page"]
        )


# ---------------------------------------------------------------------------
# HTTP mocks
# ---------------------------------------------------------------------------


def make_response(status_code: int = 200, body: object = None) -> MagicMock:
    """Mock httpx.Response exposing status_code and text."""
    resp = MagicMock()
    resp.status_code = status_code
    if body is None:
        resp.text = ""
    elif isinstance(body, str):
        resp.text = body
    else:
        resp.text = json.dumps(body)
    return resp


def ok_tickets(n: int) -> dict:
    return {"data": [{"status": "ok", "id": f"ticket-{i}"} for i in range(n)]}


@pytest.fixture
def mock_http():
    """Mock httpx.AsyncClient whose post() answers every batch with ok tickets."""
    http = AsyncMock()

    async def _post(url, content=None, headers=None, **kwargs):
        return make_response(200, ok_tickets(len(json.loads(content))))

    http.post = AsyncMock(side_effect=_post)
    return http


def sent_batches(http: AsyncMock) -> list[list[dict]]:
    """Decode the message batches passed to a mocked post()."""
    return [json.loads(call.kwargs["content"]) for call in http.post.call_args_list]


# ---------------------------------------------------------------------------
# Assembled objects
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    return Settings(
        supabase_url="https://project.supabase.test",
        supabase_service_role_key="service-key",
        _env_file=None,
    )


@pytest.fixture
def store():
    return InMemoryClaimStore()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def push_client(mock_http):
    return ExpoPushClient(mock_http)


@pytest.fixture
def dispatcher(store, directory, push_client):
    return Dispatcher(store=store, directory=directory, push=push_client)


@pytest.fixture
def helpers():
    """Expose module-level helpers to test modules without importing conftest."""

    class _Helpers:
        make_response = staticmethod(make_response)
        ok_tickets = staticmethod(ok_tickets)
        sent_batches = staticmethod(sent_batches)

    return _Helpers
