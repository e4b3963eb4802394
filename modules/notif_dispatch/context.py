"""Per-invocation caches for the dispatch loop."""

from __future__ import annotations

from dataclasses import dataclass, field

from modules.notif_dispatch.models import Recipient


@dataclass
class DispatchContext:
    """Recipient and token lists memoized for one dispatch invocation.

    Keys name a broadcast strategy (``"static"``, ``"admins"``,
    ``"roles:ADMIN,BODEGA,VENTAS"``). A fresh context is created per
    invocation and dropped when it ends, so concurrent invocations never
    share one.
    """

    recipients: dict[str, list[Recipient]] = field(default_factory=dict)
    tokens: dict[str, list[str]] = field(default_factory=dict)
