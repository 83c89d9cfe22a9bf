"""Root test configuration for softban.

Disables the admin localhost check for the suite (TestClient reports its
client host as 'testclient'); the middleware's own tests re-enable it.
Strips SOFTBAN_* environment variables so a developer's shell cannot leak
into config tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import pytest

from softban.store.memory_backend import MemoryBlockStore
from softban.store.sqlite_backend import SQLiteBlockStore

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SOFTBAN_CONFIG",
        "SOFTBAN_BLOCK_DURATION",
        "SOFTBAN_STORE_BACKEND",
        "SOFTBAN_STORE_PATH",
        "SOFTBAN_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SOFTBAN_ADMIN_LOCALHOST_ONLY", "false")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryBlockStore:
    return MemoryBlockStore()


@pytest.fixture
async def sqlite_store(tmp_path: Any) -> AsyncIterator[SQLiteBlockStore]:
    store = SQLiteBlockStore(db_path=str(tmp_path / "blocks.db"))
    await store.initialize()
    yield store
    await store.close()
