"""Push notification schemas for the mobile push gateway."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class PushMessage(BaseModel):
    """One push message addressed to a single device token."""

    to: str
    title: str
    body: str
    sound: Literal["default"] = "default"
    badge: int = 1
    data: Any = None  # routed to the app's notification handler as-is
