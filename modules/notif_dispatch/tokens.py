"""Token Directory: map user ids to push tokens."""

from __future__ import annotations

from collections.abc import Iterator

from modules.notif_dispatch.directory import Directory


def chunk(items: list, size: int) -> Iterator[list]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        yield items
        return
    for i in range(0, len(items), size):
        yield items[i:i + size]


class TokenDirectory:
    def __init__(self, directory: Directory, chunk_size: int = 500):
        self.directory = directory
        self.chunk_size = chunk_size

    async def tokens(self, user_ids: list[str]) -> list[str]:
        """Distinct usable tokens for ``user_ids``.

        Only identical token strings collapse. Two different tokens that
        belong to the same physical device are both returned.
        """
        if not user_ids:
            return []

        seen: dict[str, None] = {}
        for ids in chunk(user_ids, self.chunk_size):
            for reg in await self.directory.push_tokens(ids):
                if reg.usable:
                    seen.setdefault(reg.expo_token, None)
        return list(seen)

    async def tokens_by_device(self, user_ids: list[str]) -> list[str]:
        """One token per (user_id, device_id), the first one the directory returns.

        Registrations without a device id are skipped entirely.
        """
        if not user_ids:
            return []

        picked: dict[tuple[str, str], str] = {}
        for ids in chunk(user_ids, self.chunk_size):
            for reg in await self.directory.push_tokens(ids, require_device=True):
                if not reg.usable or not reg.user_id or not reg.device_id:
                    continue
                picked.setdefault((reg.user_id, reg.device_id), reg.expo_token)
        return list(dict.fromkeys(picked.values()))
