"""Dispatcher wiring and the optional in-process periodic loop."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog

from modules.notif_dispatch.directory import SupabaseDirectory
from modules.notif_dispatch.dispatcher import Dispatcher, clamp_limit
from modules.notif_dispatch.errors import ConfigError, safe_error_message
from modules.notif_dispatch.models import DispatchResult
from modules.notif_dispatch.push_client import ExpoPushClient
from modules.notif_dispatch.recipients import RecipientResolver
from modules.notif_dispatch.store import SupabaseOutboxStore
from modules.notif_dispatch.supabase import SupabaseClient
from modules.notif_dispatch.tokens import TokenDirectory
from shared.config import Settings

logger = structlog.get_logger()


def require_store_config(settings: Settings) -> None:
    if not settings.has_store_config:
        raise ConfigError(ConfigError.code)


@asynccontextmanager
async def open_dispatcher(settings: Settings) -> AsyncIterator[Dispatcher]:
    """Build a Dispatcher over live Supabase and Expo clients.

    One HTTP client pool is shared by the store and the gateway for the
    lifetime of the context.
    """
    require_store_config(settings)

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        client = SupabaseClient(settings.supabase_url, settings.supabase_service_role_key, http)
        directory = SupabaseDirectory(client)
        yield Dispatcher(
            store=SupabaseOutboxStore(client, settings.outbox_reclaim_after_seconds),
            directory=directory,
            push=ExpoPushClient(
                http,
                url=settings.expo_push_url,
                access_token=settings.expo_access_token,
                batch_size=settings.push_batch_size,
            ),
            resolver=RecipientResolver(
                directory,
                page_size=settings.profile_page_size,
                scan_cap=settings.profile_scan_cap,
            ),
            tokens=TokenDirectory(directory, chunk_size=settings.token_chunk_size),
        )


async def run_once(settings: Settings, limit: object = None) -> DispatchResult:
    """Run a single dispatch invocation."""
    batch = clamp_limit(limit, settings.dispatch_default_limit, settings.dispatch_max_limit)
    async with open_dispatcher(settings) as dispatcher:
        return await dispatcher.run(batch)


async def dispatch_loop(settings: Settings) -> None:
    """Background loop that drains the outbox every ``dispatch_interval_seconds``."""
    interval = settings.dispatch_interval_seconds
    logger.info("dispatch_worker_started", interval_seconds=interval)

    while True:
        try:
            result = await run_once(settings)
            if result.claimed:
                logger.info(
                    "dispatch_tick",
                    claimed=result.claimed,
                    processed=result.processed,
                    errors=len(result.errors),
                )
        except Exception as e:
            logger.error("dispatch_loop_error", error=safe_error_message(e))

        await asyncio.sleep(interval)
