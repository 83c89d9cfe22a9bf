"""softban durable store package.

Re-exports the public API for ergonomic imports:

    from softban.store import BlockRecord, BlockStore, RecordFilters

Layout:
    models.py          — BlockRecord + RecordFilters + timestamp helpers
    protocol.py        — BlockStore Protocol
    memory_backend.py  — MemoryBlockStore (process-local)
    sqlite_backend.py  — SQLiteBlockStore (aiosqlite, WAL mode, PRAGMA version guard)
    factory.py         — create_block_store() — backend selection from config
"""

from softban.store.memory_backend import MemoryBlockStore
from softban.store.models import BlockRecord, RecordFilters
from softban.store.protocol import BlockStore

__all__ = [
    "BlockRecord",
    "RecordFilters",
    "BlockStore",
    "MemoryBlockStore",
]
