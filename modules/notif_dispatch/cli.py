"""Command-line entry points for the notification dispatcher."""

from __future__ import annotations

import asyncio
import json
import sys

import click
import httpx

from modules.notif_dispatch.errors import DispatchError
from modules.notif_dispatch.worker import run_once
from shared.auth import SECRET_HEADER
from shared.config import get_settings
from shared.log import configure_logging


def run_async(coro):
    """Run an async function in a new event loop."""
    return asyncio.run(coro)


@click.group()
def cli():
    """Notification outbox dispatcher."""
    # stdout carries the command result
    configure_logging(sys.stderr)


@cli.command()
@click.option("--limit", default=20, show_default=True, help="Max outbox rows to claim.")
def dispatch(limit: int):
    """Run one dispatch invocation in-process and print the result."""
    try:
        result = run_async(run_once(get_settings(), limit))
    except DispatchError as e:
        raise click.ClickException(str(e) or e.__class__.__name__)
    click.echo(json.dumps({"ok": True, **result.model_dump()}, indent=2))


async def trigger_dispatch(url: str, limit: int, secret: str = "", timeout: float = 8.0) -> dict:
    """POST to a deployed dispatch endpoint, as the mobile app does after a sale."""
    headers = {"content-type": "application/json"}
    if secret:
        headers[SECRET_HEADER] = secret

    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(url, json={"limit": limit}, headers=headers)

    if resp.status_code < 200 or resp.status_code >= 300:
        txt = resp.text
        raise RuntimeError(f"HTTP {resp.status_code}: {txt}" if txt else f"HTTP {resp.status_code}")
    return resp.json() if resp.text else {}


@cli.command()
@click.option("--limit", default=20, show_default=True, help="Max outbox rows to claim.")
@click.option("--url", default=None, help="Dispatch endpoint (defaults to DISPATCH_URL).")
@click.option("--secret", default=None, help="Dispatch secret (defaults to DISPATCH_SECRET).")
@click.option("--timeout", default=8.0, show_default=True, help="Request timeout in seconds.")
def trigger(limit: int, url: str | None, secret: str | None, timeout: float):
    """Ask a deployed dispatcher to drain the outbox."""
    settings = get_settings()
    url = url or settings.dispatch_url
    if not url:
        raise click.ClickException("No dispatch URL: pass --url or set DISPATCH_URL")

    try:
        body = run_async(
            trigger_dispatch(url, limit, secret if secret is not None else settings.dispatch_secret, timeout)
        )
    except (RuntimeError, httpx.HTTPError) as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(body, indent=2))


if __name__ == "__main__":
    cli()
