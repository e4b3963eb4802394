"""Recipient Resolver: who must be notified for a queued event."""

from __future__ import annotations

import structlog

from modules.notif_dispatch.context import DispatchContext
from modules.notif_dispatch.directory import Directory
from modules.notif_dispatch.models import Recipient

logger = structlog.get_logger()

ADMIN_ROLE = "ADMIN"


def strategy_key(roles: list[str]) -> str:
    return "roles:" + ",".join(sorted(roles))


def unique_user_ids(recipients: list[Recipient]) -> list[str]:
    """Trimmed, non-empty user ids in first-seen order."""
    seen: dict[str, None] = {}
    for r in recipients:
        uid = r.user_id.strip()
        if uid:
            seen.setdefault(uid, None)
    return list(seen)


class RecipientResolver:
    """Resolves recipients per strategy, caching the broadcast ones in the context."""

    def __init__(self, directory: Directory, page_size: int = 1000, scan_cap: int = 20_000):
        self.directory = directory
        self.page_size = page_size
        self.scan_cap = scan_cap

    async def static_broadcast(self, ctx: DispatchContext) -> list[Recipient]:
        if "static" not in ctx.recipients:
            ctx.recipients["static"] = await self.directory.static_recipients()
        return ctx.recipients["static"]

    async def admins(self, ctx: DispatchContext) -> list[Recipient]:
        key = "admins"
        if key not in ctx.recipients:
            ctx.recipients[key] = await self._scan_roles([ADMIN_ROLE])
        return ctx.recipients[key]

    async def by_roles(self, ctx: DispatchContext, roles: list[str]) -> list[Recipient]:
        wanted = list(dict.fromkeys(r.strip() for r in roles if r and r.strip()))
        if not wanted:
            return []
        key = strategy_key(wanted)
        if key not in ctx.recipients:
            ctx.recipients[key] = await self._scan_roles(wanted)
        return ctx.recipients[key]

    async def for_sale(self, venta_id: str) -> list[Recipient]:
        """Entity-specific recipients. Never cached: depends on the row."""
        return await self.directory.sale_recipients(venta_id)

    async def _scan_roles(self, roles: list[str]) -> list[Recipient]:
        """Page through profiles by role.

        Stops on an empty or short page, or once ``scan_cap`` rows have been
        read, so a directory that keeps returning full pages cannot loop
        forever.
        """
        found: dict[str, Recipient] = {}
        offset = 0
        while offset < self.scan_cap:
            page = await self.directory.profiles_page(roles, self.page_size, offset)
            if not page:
                break
            for r in page:
                if r.user_id:
                    found.setdefault(r.user_id, r)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        logger.debug("profiles_scanned", roles=roles, users=len(found), offset=offset)
        return list(found.values())
