"""RequestCache — the request/session-scoped fast tier.

One RequestCache belongs to one execution context (an inbound request, or a
session that outlives several requests). It is passed explicitly into every
BlockManager call; nothing here is process-global, and two contexts never see
each other's entries except through the durable store.

The cache is not a source of truth. An entry may be missing, stale, or ahead
of the durable store, and it is never trusted past its own rate_limit_expire;
BlockManager compares the expiry against the clock on every check.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from softban.store.models import ensure_utc


@dataclass
class CacheEntry:
    """Local view of one actor's block state."""

    is_rate_limited: bool = False
    rate_limit_expire: Optional[datetime] = None


@dataclass(frozen=True)
class ActiveBlock:
    """The context has recorded a block for this actor until expiry."""

    expiry: datetime


@dataclass(frozen=True)
class _NoLocalInfo:
    """The context knows nothing about this actor; ask the durable store."""


NoLocalInfo = _NoLocalInfo()

BlockStatus = Union[ActiveBlock, _NoLocalInfo]


class RequestCache:
    """In-memory flag store private to a single request/session context."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def check_local(self, actor_id: str) -> BlockStatus:
        """Report what this context recorded for actor_id. Never does I/O."""
        entry = self._entries.get(actor_id)
        if entry is None or not entry.is_rate_limited or entry.rate_limit_expire is None:
            return NoLocalInfo
        return ActiveBlock(entry.rate_limit_expire)

    def set_local(self, actor_id: str, expiry: datetime) -> None:
        """Record a block for actor_id for the rest of this context."""
        self._entries[actor_id] = CacheEntry(
            is_rate_limited=True,
            rate_limit_expire=ensure_utc(expiry),
        )

    def clear_local(self, actor_id: str) -> None:
        """Drop the local flag for actor_id (stale or no longer applicable)."""
        self._entries.pop(actor_id, None)

    def entry(self, actor_id: str) -> Optional[CacheEntry]:
        return self._entries.get(actor_id)

    def __len__(self) -> int:
        return len(self._entries)
