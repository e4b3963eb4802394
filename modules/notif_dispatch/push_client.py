"""Expo push API client."""

from __future__ import annotations

import json

import httpx
import structlog

from modules.notif_dispatch.errors import (
    GatewayHTTPError,
    GatewayProtocolError,
    GatewayTicketError,
)
from modules.notif_dispatch.tokens import chunk
from shared.schemas.notifications import PushMessage

logger = structlog.get_logger()

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"
# Expo rejects requests carrying more than 100 messages
MAX_BATCH_SIZE = 100


def _ticket_failure(ticket: object) -> str | None:
    """Return a failure description for a non-ok ticket, or None if it is ok."""
    if not isinstance(ticket, dict) or ticket.get("status") not in ("ok", "error"):
        return "INVALID_TICKET"
    if ticket["status"] == "error":
        message = ticket.get("message")
        return message if isinstance(message, str) and message else "EXPO_ERROR"
    return None


class ExpoPushClient:
    """Sends push messages in batches and checks every delivery ticket."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str = EXPO_PUSH_URL,
        access_token: str = "",
        batch_size: int = MAX_BATCH_SIZE,
    ):
        self._http = http
        self.url = url
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._headers = {
            "content-type": "application/json",
            "accept": "application/json",
        }
        if access_token:
            self._headers["authorization"] = f"Bearer {access_token}"

    async def send(self, messages: list[PushMessage]) -> None:
        """Send ``messages``; raise if any batch or ticket failed.

        An HTTP or protocol failure stops at the failing batch; batches
        before it have already been delivered. Ticket failures are collected
        across all batches and raised once at the end.
        """
        if not messages:
            return

        failures: list[str] = []
        for batch in chunk(messages, self.batch_size):
            resp = await self._http.post(
                self.url,
                content=json.dumps([m.model_dump() for m in batch]),
                headers=self._headers,
            )
            raw = resp.text
            if resp.status_code < 200 or resp.status_code >= 300:
                raise GatewayHTTPError(resp.status_code, raw)

            try:
                parsed = json.loads(raw)
            except ValueError:
                raise GatewayProtocolError(f"EXPO_BAD_JSON: {raw[:500]}")

            tickets = parsed.get("data") if isinstance(parsed, dict) else None
            if not isinstance(tickets, list):
                raise GatewayProtocolError(f"EXPO_BAD_RESPONSE: {raw[:500]}")
            if len(tickets) != len(batch):
                raise GatewayProtocolError(
                    f"EXPO_LENGTH_MISMATCH: expected={len(batch)} got={len(tickets)}"
                )

            bad = [f for f in map(_ticket_failure, tickets) if f is not None]
            failures.extend(bad)
            logger.info("push_batch_sent", size=len(batch), bad=len(bad))

        if failures:
            raise GatewayTicketError(failures)
