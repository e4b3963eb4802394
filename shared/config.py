"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backing store (Supabase REST / RPC)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Optional shared secret expected in the x-dispatch-secret header.
    # Empty disables the check.
    dispatch_secret: str = ""

    # Push gateway
    expo_access_token: str = ""
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"

    # Dispatch batch sizing
    dispatch_default_limit: int = 20
    dispatch_max_limit: int = 100
    push_batch_size: int = 100
    # PostgREST `in.(...)` filters get unwieldy past this many ids
    token_chunk_size: int = 500
    profile_page_size: int = 1000
    profile_scan_cap: int = 20_000

    http_timeout_seconds: float = 15.0

    # Forwarded to the claim RPC as p_reclaim_after_seconds when set.
    # Left unset, the store's own (unknown) policy applies to rows whose
    # invocation died before marking them.
    outbox_reclaim_after_seconds: int | None = None

    # In-process periodic dispatch; 0 disables the loop
    dispatch_interval_seconds: int = 0

    # Deployed endpoint used by `cli trigger`
    dispatch_url: str = ""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator(
        "supabase_url",
        "supabase_service_role_key",
        "dispatch_secret",
        "expo_access_token",
        "expo_push_url",
        "dispatch_url",
        mode="before",
    )
    @classmethod
    def _strip(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @property
    def has_store_config(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
