"""Pydantic models for outbox rows, recipients, push tokens and results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, StrictInt, field_validator


class OutboxRow(BaseModel):
    """A claimed notification intent."""

    id: StrictInt | str
    type: str = ""
    ref_id: Any = None
    payload: Any = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: object) -> str:
        return "" if v is None else str(v)

    @property
    def key(self) -> str:
        """String form of the id used for RPC arguments and reporting."""
        if isinstance(self.id, str):
            return self.id.strip()
        return str(self.id)

    @property
    def payload_dict(self) -> dict[str, Any]:
        return self.payload if isinstance(self.payload, dict) else {}


class Recipient(BaseModel):
    user_id: str
    role: str | None = None


class PushTokenRegistration(BaseModel):
    """A row from the push-token directory."""

    user_id: str = ""
    device_id: str | None = None
    expo_token: str = ""
    enabled: bool = True

    @field_validator("user_id", "expo_token", mode="before")
    @classmethod
    def _clean(cls, v: object) -> str:
        return v.strip() if isinstance(v, str) else ""

    @field_validator("device_id", mode="before")
    @classmethod
    def _clean_device(cls, v: object) -> str | None:
        if not isinstance(v, str):
            return None
        return v.strip() or None

    @property
    def usable(self) -> bool:
        return self.enabled and bool(self.expo_token)


class DispatchErrorRecord(BaseModel):
    outbox_id: str
    error: str


class DispatchResult(BaseModel):
    """Counters and per-row failures for one dispatch invocation."""

    claimed: int = 0
    processed: int = 0
    errors: list[DispatchErrorRecord] = Field(default_factory=list)

    def record_processed(self) -> None:
        self.processed += 1

    def record_error(self, outbox_id: str, error: str) -> None:
        self.errors.append(DispatchErrorRecord(outbox_id=outbox_id, error=error))
