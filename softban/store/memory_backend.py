"""MemoryBlockStore — process-local BlockStore.

Suitable for single-process deployments and for tests. Records live in a
dict guarded by an asyncio.Lock, so upsert/remove are atomic with respect to
every coroutine in the process. Nothing survives a restart and nothing is
shared with other processes; use SQLiteBlockStore for that.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

from softban.store.models import BlockRecord, RecordFilters, ensure_utc
from softban.store.protocol import BlockStore
from softban.utils.logger import get_logger

logger = get_logger(__name__)


def _matches(record: BlockRecord, filters: RecordFilters) -> bool:
    if filters.id is not None and record.id != filters.id:
        return False
    if filters.active_at is not None and record.unblock_time <= ensure_utc(filters.active_at):
        return False
    if filters.expired_at is not None and record.unblock_time > ensure_utc(filters.expired_at):
        return False
    if filters.reason_contains is not None:
        if record.reason is None or filters.reason_contains not in record.reason:
            return False
    return True


class MemoryBlockStore:
    """In-memory BlockStore keyed by actor identity."""

    def __init__(self) -> None:
        self._records: dict[str, BlockRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, record_id: str) -> Optional[BlockRecord]:
        return self._records.get(record_id)

    async def upsert(
        self, record_id: str, unblock_time: datetime, reason: Optional[str] = None
    ) -> None:
        # Validate before taking the lock so a bad write never replaces a good record
        record = BlockRecord(id=record_id, unblock_time=unblock_time, reason=reason)
        async with self._lock:
            self._records[record_id] = record

    async def remove(self, record_id: str, expired_at: Optional[datetime] = None) -> bool:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return False
            if expired_at is not None and record.unblock_time > ensure_utc(expired_at):
                return False
            del self._records[record_id]
            return True

    async def list_records(self, filters: RecordFilters) -> list[BlockRecord]:
        matched = [r for r in self._records.values() if _matches(r, filters)]
        matched.sort(key=lambda r: r.id)
        matched.sort(key=lambda r: r.unblock_time, reverse=True)
        return matched[filters.offset:filters.offset + filters.limit]

    async def count_records(self, filters: RecordFilters) -> int:
        return sum(1 for r in self._records.values() if _matches(r, filters))

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("memory_store_closed", record_count=len(self._records))


# MemoryBlockStore must satisfy the BlockStore protocol; checked at import time.
assert isinstance(MemoryBlockStore(), BlockStore), (
    "MemoryBlockStore does not satisfy BlockStore protocol — implementation error"
)
