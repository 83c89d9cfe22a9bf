"""Unit tests for MemoryBlockStore — the process-local BlockStore."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from softban.errors import MalformedRecordError
from softban.store.memory_backend import MemoryBlockStore
from softban.store.models import BlockRecord, RecordFilters
from softban.store.protocol import BlockStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestMemoryBlockStore:

    def test_protocol_compliance(self, memory_store: MemoryBlockStore) -> None:
        assert isinstance(memory_store, BlockStore)

    async def test_upsert_get_remove(self, memory_store: MemoryBlockStore) -> None:
        await memory_store.upsert("account:1", T0, "reject5")
        assert await memory_store.get("account:1") == BlockRecord("account:1", T0, "reject5")
        assert await memory_store.remove("account:1") is True
        assert await memory_store.get("account:1") is None

    async def test_remove_missing_is_noop(self, memory_store: MemoryBlockStore) -> None:
        assert await memory_store.remove("account:404") is False

    async def test_conditional_remove_keeps_unexpired_record(
        self, memory_store: MemoryBlockStore
    ) -> None:
        later = T0 + timedelta(minutes=5)
        await memory_store.upsert("account:1", later, "fresh")

        assert await memory_store.remove("account:1", expired_at=T0) is False
        assert await memory_store.get("account:1") == BlockRecord("account:1", later, "fresh")

        assert await memory_store.remove("account:1", expired_at=later) is True
        assert await memory_store.get("account:1") is None

    async def test_invalid_write_keeps_previous_record(self, memory_store: MemoryBlockStore) -> None:
        await memory_store.upsert("account:1", T0, "good")
        with pytest.raises(MalformedRecordError):
            await memory_store.upsert("account:1", None, "bad")  # type: ignore[arg-type]
        assert await memory_store.get("account:1") == BlockRecord("account:1", T0, "good")

    async def test_concurrent_upserts_last_writer_wins(self, memory_store: MemoryBlockStore) -> None:
        await asyncio.gather(*(
            memory_store.upsert("account:1", T0 + timedelta(seconds=i), f"r{i}") for i in range(10)
        ))
        assert await memory_store.count_records(RecordFilters()) == 1

    async def test_filters_match_sqlite_semantics(self, memory_store: MemoryBlockStore) -> None:
        await memory_store.upsert("account:old", T0 - timedelta(hours=1), "reject3")
        await memory_store.upsert("account:now", T0 + timedelta(minutes=5), "reject5")
        await memory_store.upsert("session:abc", T0 + timedelta(minutes=9))

        newest_first = await memory_store.list_records(RecordFilters())
        assert [r.id for r in newest_first] == ["session:abc", "account:now", "account:old"]

        active = await memory_store.list_records(RecordFilters(active_at=T0))
        assert {r.id for r in active} == {"account:now", "session:abc"}
        assert await memory_store.count_records(RecordFilters(expired_at=T0)) == 1
        assert await memory_store.count_records(RecordFilters(reason_contains="reject")) == 2

        page = await memory_store.list_records(RecordFilters(limit=1, offset=1))
        assert [r.id for r in page] == ["account:now"]

    async def test_health_check(self, memory_store: MemoryBlockStore) -> None:
        assert await memory_store.health_check() is True
