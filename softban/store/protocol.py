"""BlockStore Protocol — the durable tier's pluggable interface.

BlockRecord and RecordFilters are defined in softban/store/models.py.

Layout:
    models.py          — BlockRecord + RecordFilters + timestamp helpers
    protocol.py        — BlockStore Protocol
    memory_backend.py  — MemoryBlockStore (process-local)
    sqlite_backend.py  — SQLiteBlockStore (aiosqlite, cross-process)
    factory.py         — create_block_store() — backend selection
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from softban.store.models import BlockRecord, RecordFilters


@runtime_checkable
class BlockStore(Protocol):
    """Durable, cross-process store of BlockRecords keyed by actor identity.

    Unlike the request-path helpers built on top of it, a BlockStore DOES
    raise: failures surface as StoreUnavailableError / StoreWriteError
    (softban.errors) and unreadable rows as MalformedRecordError. Deciding
    what a failure means for the caller (fail open, log and continue) is
    BlockManager's job, not the store's.

    upsert() and remove() are atomic: a concurrent reader sees either the
    old record or the new one, never a partial write. Concurrent upserts
    for the same id are last-writer-wins.
    """

    async def get(self, record_id: str) -> Optional[BlockRecord]:
        """Return the record for record_id, or None. No side effects."""
        ...

    async def upsert(
        self, record_id: str, unblock_time: datetime, reason: Optional[str] = None
    ) -> None:
        """Create or replace the record for record_id in one atomic unit."""
        ...

    async def remove(self, record_id: str, expired_at: Optional[datetime] = None) -> bool:
        """Atomically delete the record for record_id. Missing ids are a no-op.

        When expired_at is given the delete is conditional: only a record
        with unblock_time <= expired_at is removed, checked in the same atomic
        unit as the delete. Returns True if a record was removed.
        """
        ...

    async def list_records(self, filters: RecordFilters) -> list[BlockRecord]:
        """Read-only enumeration for operational inspection.

        Sorted by unblock_time DESC. Rows that fail validation are skipped
        and logged, never returned half-populated.
        """
        ...

    async def count_records(self, filters: RecordFilters) -> int:
        """Count records matching filters (ignores limit/offset)."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is reachable. Must not raise."""
        ...

    async def close(self) -> None:
        """Release connections and resources."""
        ...
