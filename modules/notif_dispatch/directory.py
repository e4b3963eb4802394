"""Reads against the identity, push-token and sales tables.

``Directory`` is the seam the resolver and token layers depend on; the
Supabase implementation only knows how to phrase each read as an RPC or a
PostgREST filter.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from modules.notif_dispatch.models import PushTokenRegistration, Recipient
from modules.notif_dispatch.supabase import SupabaseClient

STATIC_RECIPIENTS_RPC = "rpc_notif_destinatarios_venta_nuevos"
SALE_RECIPIENTS_RPC = "rpc_notif_destinatarios_venta_facturada"

_SAFE_INT_RE = re.compile(r"^[0-9]{1,15}$")


def rpc_bigint_arg(value: str) -> int | str:
    """Send short numeric ids as JSON numbers; let PostgREST cast the rest."""
    s = value.strip()
    if _SAFE_INT_RE.match(s):
        return int(s)
    return s


def _parse_recipients(raw: object) -> list[Recipient]:
    if not isinstance(raw, list):
        return []
    out = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        uid = item.get("user_id")
        if isinstance(uid, str) and uid.strip():
            role = item.get("role")
            out.append(Recipient(user_id=uid.strip(), role=role if isinstance(role, str) else None))
    return out


def _role_filter(roles: list[str]) -> str:
    if len(roles) == 1:
        return f"eq.{roles[0]}"
    quoted = ",".join('"' + r.replace('"', '\\"') + '"' for r in roles)
    return f"in.({quoted})"


class Directory(ABC):
    """Read access to recipients, profiles, push tokens and sales."""

    @abstractmethod
    async def static_recipients(self) -> list[Recipient]:
        """Recipients of new-sale broadcasts."""

    @abstractmethod
    async def sale_recipients(self, venta_id: str) -> list[Recipient]:
        """Recipients tied to one specific sale."""

    @abstractmethod
    async def profiles_page(self, roles: list[str], limit: int, offset: int) -> list[Recipient]:
        """One page of profiles whose role is in ``roles``."""

    @abstractmethod
    async def push_tokens(
        self, user_ids: list[str], require_device: bool = False
    ) -> list[PushTokenRegistration]:
        """Enabled, non-empty push tokens for ``user_ids``."""

    @abstractmethod
    async def sale_client_name(self, venta_id: str) -> str:
        """Customer name on a sale, or an empty string."""


class SupabaseDirectory(Directory):
    def __init__(self, client: SupabaseClient):
        self.client = client

    async def static_recipients(self) -> list[Recipient]:
        return _parse_recipients(await self.client.rpc(STATIC_RECIPIENTS_RPC, {}))

    async def sale_recipients(self, venta_id: str) -> list[Recipient]:
        raw = await self.client.rpc(SALE_RECIPIENTS_RPC, {"p_venta_id": rpc_bigint_arg(venta_id)})
        return _parse_recipients(raw)

    async def profiles_page(self, roles: list[str], limit: int, offset: int) -> list[Recipient]:
        params = [
            ("select", "id,role"),
            ("role", _role_filter(roles)),
            ("limit", str(limit)),
            ("offset", str(offset)),
        ]
        rows = await self.client.select("profiles", params)
        out = []
        for r in rows:
            uid = r.get("id") if isinstance(r, dict) else None
            if isinstance(uid, str) and uid.strip():
                role = r.get("role")
                out.append(Recipient(user_id=uid.strip(), role=role if isinstance(role, str) else None))
            else:
                # Keep page length intact so the caller's short-page check stays honest
                out.append(Recipient(user_id=""))
        return out

    async def push_tokens(
        self, user_ids: list[str], require_device: bool = False
    ) -> list[PushTokenRegistration]:
        if not user_ids:
            return []
        params = [
            ("select", "expo_token,user_id,device_id"),
            ("user_id", f"in.({','.join(user_ids)})"),
            ("enabled", "eq.true"),
        ]
        if require_device:
            params.append(("device_id", "not.is.null"))
        params += [("expo_token", "not.is.null"), ("expo_token", "neq.")]

        rows = await self.client.select("user_push_tokens", params)
        return [PushTokenRegistration.model_validate(r) for r in rows if isinstance(r, dict)]

    async def sale_client_name(self, venta_id: str) -> str:
        params = [("select", "cliente_nombre"), ("id", f"eq.{venta_id}"), ("limit", "1")]
        rows = await self.client.select("ventas", params)
        if not rows or not isinstance(rows[0], dict):
            return ""
        return str(rows[0].get("cliente_nombre") or "").strip()
