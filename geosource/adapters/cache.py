"""Per-process cache of spreadsheet rows keyed by tenant and sheet."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

DEFAULT_TTL_SECONDS = 30.0


@dataclass
class CachedSheet:
    headers: list[str]
    rows: list[list[Any]]
    stored_at: float = field(default=0.0)


class SheetRowCache:
    """Absorb provider rate limits by reusing recent reads for a short time.

    Entries are local to this process and are never assumed consistent with
    other server instances.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], CachedSheet] = {}

    def get(self, tenant_id: str, table: str) -> CachedSheet | None:
        entry = self._entries.get((tenant_id, table))
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[(tenant_id, table)]
            return None
        return entry

    def set(self, tenant_id: str, table: str, headers: list[str], rows: list[list[Any]]) -> CachedSheet:
        entry = CachedSheet(headers=headers, rows=rows, stored_at=self._clock())
        self._entries[(tenant_id, table)] = entry
        return entry

    def invalidate(self, tenant_id: str, table: str | None = None) -> None:
        if table is not None:
            self._entries.pop((tenant_id, table), None)
            return
        for key in [key for key in self._entries if key[0] == tenant_id]:
            del self._entries[key]
