"""Dispatch Loop: claim, resolve, fetch tokens, send, mark terminal."""

from __future__ import annotations

import math
from dataclasses import replace
from typing import assert_never

import structlog

from modules.notif_dispatch.context import DispatchContext
from modules.notif_dispatch.directory import Directory
from modules.notif_dispatch.errors import (
    ClaimError,
    safe_error_message,
    short_error_message,
)
from modules.notif_dispatch.events import (
    PURCHASE_LINE_ROLES,
    NewSaleEvent,
    OutboxEvent,
    PurchaseLineEvent,
    PushContent,
    SaleAdminRequestEvent,
    SaleInvoicedEvent,
    UnhandledEvent,
    parse_event,
)
from modules.notif_dispatch.models import DispatchResult, OutboxRow
from modules.notif_dispatch.push_client import ExpoPushClient
from modules.notif_dispatch.recipients import RecipientResolver, strategy_key, unique_user_ids
from modules.notif_dispatch.store import ClaimStore
from modules.notif_dispatch.tokens import TokenDirectory
from shared.schemas.notifications import PushMessage

logger = structlog.get_logger()

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def clamp_limit(raw: object, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """Coerce a requested batch size into [1, maximum].

    Only real, finite numbers count; anything else yields ``default``.
    """
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    if isinstance(raw, float) and not math.isfinite(raw):
        return default
    return max(1, min(maximum, math.trunc(raw)))


def build_messages(content: PushContent, tokens: list[str]) -> list[PushMessage]:
    return [
        PushMessage(to=token, title=content.title, body=content.body, data=content.data)
        for token in tokens
    ]


class Dispatcher:
    """Drains one bounded batch of the notification outbox per call to ``run``.

    Rows are handled strictly one after another. A failure while handling a
    row marks that row errored and the loop moves on; only a failed claim
    aborts the invocation.
    """

    def __init__(
        self,
        store: ClaimStore,
        directory: Directory,
        push: ExpoPushClient,
        resolver: RecipientResolver | None = None,
        tokens: TokenDirectory | None = None,
    ):
        self.store = store
        self.directory = directory
        self.push = push
        self.resolver = resolver or RecipientResolver(directory)
        self.tokens = tokens or TokenDirectory(directory)

    async def run(self, limit: int = DEFAULT_LIMIT) -> DispatchResult:
        result = DispatchResult()

        try:
            rows = await self.store.claim(limit)
        except Exception as e:
            raise ClaimError(safe_error_message(e)) from e

        result.claimed = len(rows)
        if not rows:
            return result
        logger.info("dispatch_claimed", count=len(rows), limit=limit)

        ctx = DispatchContext()
        for row in rows:
            await self._process_row(row, ctx, result)

        logger.info(
            "dispatch_finished",
            claimed=result.claimed,
            processed=result.processed,
            errors=len(result.errors),
        )
        return result

    async def _process_row(
        self, row: OutboxRow, ctx: DispatchContext, result: DispatchResult
    ) -> None:
        outbox_id = row.key
        try:
            event = parse_event(row)
            await self._handle(event, ctx)
            await self.store.mark_processed(outbox_id)
            result.record_processed()
        except Exception as e:
            logger.error(
                "outbox_failed", type=row.type, outbox_id=outbox_id, error=safe_error_message(e)
            )
            message = short_error_message(e)
            result.record_error(outbox_id, message)
            try:
                await self.store.mark_error(outbox_id, message)
            except Exception as mark_err:
                logger.error(
                    "mark_error_failed", outbox_id=outbox_id, error=safe_error_message(mark_err)
                )

    async def _handle(self, event: OutboxEvent, ctx: DispatchContext) -> None:
        match event:
            case NewSaleEvent():
                tokens = await self._broadcast_tokens(ctx)
            case SaleInvoicedEvent():
                if not event.cliente_nombre:
                    event = replace(event, cliente_nombre=await self._client_name(event.venta_id))
                recipients = await self.resolver.for_sale(event.venta_id)
                tokens = await self.tokens.tokens_by_device(unique_user_ids(recipients))
            case SaleAdminRequestEvent():
                tokens = await self._admin_tokens(ctx)
            case PurchaseLineEvent():
                tokens = await self._role_tokens(ctx, PURCHASE_LINE_ROLES)
            case UnhandledEvent():
                # Obsolete or unknown kinds are drained so they never block the queue
                logger.info("outbox_type_unhandled", type=event.type, outbox_id=event.outbox_id)
                return
            case _:
                assert_never(event)

        logger.info(
            "outbox_dispatch",
            type=type(event).__name__,
            outbox_id=event.outbox_id,
            tokens=len(tokens),
        )
        if tokens:
            await self.push.send(build_messages(event.render(), tokens))

    # ------------------------------------------------------------------
    # Cached token lookups
    # ------------------------------------------------------------------

    async def _broadcast_tokens(self, ctx: DispatchContext) -> list[str]:
        if "static" not in ctx.tokens:
            recipients = await self.resolver.static_broadcast(ctx)
            user_ids = unique_user_ids(recipients)
            ctx.tokens["static"] = await self.tokens.tokens(user_ids)
            logger.info(
                "recipients_resolved",
                strategy="static",
                users=len(user_ids),
                tokens=len(ctx.tokens["static"]),
            )
        return ctx.tokens["static"]

    async def _admin_tokens(self, ctx: DispatchContext) -> list[str]:
        if "admins" not in ctx.tokens:
            user_ids = unique_user_ids(await self.resolver.admins(ctx))
            ctx.tokens["admins"] = await self.tokens.tokens_by_device(user_ids)
            logger.info(
                "recipients_resolved",
                strategy="admins",
                users=len(user_ids),
                tokens=len(ctx.tokens["admins"]),
            )
        return ctx.tokens["admins"]

    async def _role_tokens(self, ctx: DispatchContext, roles: list[str]) -> list[str]:
        key = strategy_key(roles)
        if key not in ctx.tokens:
            user_ids = unique_user_ids(await self.resolver.by_roles(ctx, roles))
            ctx.tokens[key] = await self.tokens.tokens_by_device(user_ids)
            logger.info(
                "recipients_resolved", strategy=key, users=len(user_ids), tokens=len(ctx.tokens[key])
            )
        return ctx.tokens[key]

    async def _client_name(self, venta_id: str) -> str:
        """Customer name for the invoice copy; failures fall back to generic text."""
        try:
            return await self.directory.sale_client_name(venta_id)
        except Exception as e:
            logger.warning("sale_client_lookup_failed", venta_id=venta_id, error=str(e)[:200])
            return ""
