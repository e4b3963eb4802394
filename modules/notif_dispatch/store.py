"""Outbox store interface and its Supabase RPC implementation.

The claim operation is atomic and exclusive inside the database; concurrent
dispatch invocations never receive the same row. Nothing here adds further
coordination.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog
from pydantic import ValidationError

from modules.notif_dispatch.models import OutboxRow
from modules.notif_dispatch.supabase import SupabaseClient

logger = structlog.get_logger()

CLAIM_RPC = "rpc_notif_outbox_claim"
MARK_PROCESSED_RPC = "rpc_notif_outbox_mark_processed"
MARK_ERROR_RPC = "rpc_notif_outbox_mark_error"


def parse_claimed_rows(raw: object) -> list[OutboxRow]:
    """Validate claimed rows, dropping any that cannot be addressed by id."""
    if not isinstance(raw, list):
        return []

    rows: list[OutboxRow] = []
    for item in raw:
        try:
            row = OutboxRow.model_validate(item)
        except ValidationError as e:
            logger.warning("outbox_row_invalid", error=str(e)[:200])
            continue
        if not row.key:
            logger.warning("outbox_row_missing_id", type=row.type)
            continue
        rows.append(row)
    return rows


class ClaimStore(ABC):
    """Durable queue of pending notification intents."""

    @abstractmethod
    async def claim(self, limit: int) -> list[OutboxRow]:
        """Atomically claim up to ``limit`` pending rows."""

    @abstractmethod
    async def mark_processed(self, outbox_id: str) -> None:
        """Move a claimed row to PROCESSED."""

    @abstractmethod
    async def mark_error(self, outbox_id: str, error: str) -> None:
        """Move a claimed row to ERROR with a short message."""


class SupabaseOutboxStore(ClaimStore):
    """ClaimStore backed by the notif_outbox RPCs."""

    def __init__(self, client: SupabaseClient, reclaim_after_seconds: int | None = None):
        self.client = client
        self.reclaim_after_seconds = reclaim_after_seconds

    async def claim(self, limit: int) -> list[OutboxRow]:
        args: dict = {"p_limit": limit}
        if self.reclaim_after_seconds is not None:
            args["p_reclaim_after_seconds"] = self.reclaim_after_seconds
        raw = await self.client.rpc(CLAIM_RPC, args)
        return parse_claimed_rows(raw)

    async def mark_processed(self, outbox_id: str) -> None:
        await self.client.rpc(MARK_PROCESSED_RPC, {"p_id": outbox_id})

    async def mark_error(self, outbox_id: str, error: str) -> None:
        await self.client.rpc(MARK_ERROR_RPC, {"p_id": outbox_id, "p_error": error})
