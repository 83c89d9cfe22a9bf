"""SQLiteBlockStore — aiosqlite-based durable block store.

The durable tier shared by every worker process on a host. One row per actor
identity in ``block_records``; the row is the source of truth across cache
misses and across sessions.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (readers never wait on the writer)
  - busy_timeout: lock contention surfaces as OperationalError, not a hang
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch
  - Long-lived connection: opened in initialize(), closed in close()
  - Scoped transactions: every mutation runs inside ``_transaction()``, which
    issues BEGIN IMMEDIATE and commits on success or rolls back on any exit
  - Atomic upsert: INSERT ... ON CONFLICT(id) DO UPDATE (last writer wins)
  - Bounded calls: each operation is wrapped in asyncio.wait_for(timeout_s)
  - Shielded writes: a write whose caller timed out still commits or rolls
    back, so the connection never stays inside an open transaction
  - Conditional cleanup: remove(id, expired_at) deletes only a still-expired row

Driver errors are translated into StoreUnavailableError / StoreWriteError;
rows that fail validation raise MalformedRecordError from get().
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar

import aiosqlite

from softban.constants import DEFAULT_STORE_PATH, DEFAULT_STORE_TIMEOUT_MS, SQLITE_BUSY_TIMEOUT_MS
from softban.errors import MalformedRecordError, StoreUnavailableError, StoreWriteError
from softban.store.models import BlockRecord, RecordFilters, ensure_utc, utcnow
from softban.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS block_records (
    id            TEXT PRIMARY KEY,
    unblock_time  TEXT NOT NULL,
    reason        TEXT,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_block_unblock_time
    ON block_records(unblock_time DESC);
"""

_SCHEMA_VERSION = 1

_UPSERT_SQL = """
INSERT INTO block_records (id, unblock_time, reason, updated_at)
VALUES (?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    unblock_time = excluded.unblock_time,
    reason       = excluded.reason,
    updated_at   = excluded.updated_at
"""


def _format_ts(value: datetime) -> str:
    """Fixed-width ISO-8601 UTC text, so lexical order == chronological order."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


# ─── SQLiteBlockStore ─────────────────────────────────────────────────────────


class SQLiteBlockStore:
    """Async SQLite block store using aiosqlite exclusively.

    Default path: ~/.softban/blocks.db
    Override via: SOFTBAN_STORE_PATH environment variable or store.path in config,
    or pass db_path explicitly (used in tests).

    Usage:
        store = SQLiteBlockStore(db_path="/var/lib/softban/blocks.db")
        await store.initialize()   # raises RuntimeError on schema version mismatch
        await store.upsert("account:42", unblock_time, "rejected: code 5")
        record = await store.get("account:42")
        await store.close()
    """

    def __init__(
        self,
        db_path: str = DEFAULT_STORE_PATH,
        timeout_s: float = DEFAULT_STORE_TIMEOUT_MS / 1000.0,
    ) -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._timeout_s = timeout_s
        self._db: Optional[aiosqlite.Connection] = None
        # One transaction at a time on the shared connection
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL mode, and create/verify the schema.

        Steps:
          1. Create parent directory if absent
          2. Open aiosqlite connection in autocommit mode (explicit transactions)
          3. Enable WAL and busy_timeout
          4. Read PRAGMA user_version
             - 0: fresh DB → create schema, set user_version=1
             - 1: compatible schema → no-op
             - other: close and raise RuntimeError

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS};")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            logger.info(
                "block_store_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "block_store_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported block store schema version: {current_version}. "
                f"Expected {_SCHEMA_VERSION}; point store.path at a fresh file or "
                "delete the existing database to reset."
            )

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully.

        Waits for an in-flight write (including one whose caller already
        timed out) to commit or roll back first.
        """
        async with self._write_lock:
            if self._db is not None:
                await self._db.close()
                self._db = None
                logger.debug("block_store_closed", db_path=self._db_path)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreUnavailableError("block store is not initialized")
        return self._db

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call, converting a timeout into StoreUnavailableError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(
                f"block store {operation} timed out after {self._timeout_s:.3f}s"
            ) from exc

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Scoped write transaction: commit on success, rollback on every error exit.

        BEGIN IMMEDIATE takes the database write lock up front, so two
        processes upserting the same id serialize instead of interleaving.
        """
        async with self._write_lock:
            db = self._require_db()
            if db.in_transaction:
                # Left open by an interrupted statement; it still holds the
                # database write lock.
                logger.warning("block_store_stale_transaction", db_path=self._db_path)
                await db.execute("ROLLBACK")
            try:
                await db.execute("BEGIN IMMEDIATE")
                yield db
            except BaseException:
                if db.in_transaction:
                    try:
                        await db.execute("ROLLBACK")
                    except (aiosqlite.Error, ValueError) as rollback_exc:
                        logger.error(
                            "block_store_rollback_failed",
                            error=str(rollback_exc),
                            error_type=type(rollback_exc).__name__,
                        )
                raise
            else:
                await db.execute("COMMIT")

    # ── BlockStore Protocol Methods ───────────────────────────────────────────

    async def get(self, record_id: str) -> Optional[BlockRecord]:
        """Fetch the record for record_id.

        Raises:
            StoreUnavailableError: Connection missing, driver error, or timeout.
            MalformedRecordError:  Stored row fails validation.
        """
        row = await self._bounded("get", self._fetch_one(record_id))
        if row is None:
            return None
        return BlockRecord.from_row(row)

    async def _fetch_one(self, record_id: str) -> Optional[aiosqlite.Row]:
        db = self._require_db()
        try:
            cursor = await db.execute(
                "SELECT id, unblock_time, reason FROM block_records WHERE id = ?",
                (record_id,),
            )
            return await cursor.fetchone()
        except (aiosqlite.Error, ValueError) as exc:
            raise StoreUnavailableError(f"block store read failed: {exc}") from exc

    async def upsert(
        self, record_id: str, unblock_time: datetime, reason: Optional[str] = None
    ) -> None:
        """Create or replace the record for record_id.

        Raises:
            StoreUnavailableError: Database locked/unreachable, or timeout.
            StoreWriteError:       The write was rejected.
        """
        record = BlockRecord(id=record_id, unblock_time=unblock_time, reason=reason)
        await self._shielded_write(
            "upsert",
            _UPSERT_SQL,
            (record.id, _format_ts(record.unblock_time), record.reason, _format_ts(utcnow())),
        )

    async def remove(self, record_id: str, expired_at: Optional[datetime] = None) -> bool:
        """Delete the record for record_id. Missing ids are a no-op.

        With expired_at, only a record whose unblock_time <= expired_at is
        deleted; a block rewritten by another process in the meantime stays.

        Returns:
            True if a row was deleted.

        Raises:
            StoreUnavailableError: Database locked/unreachable, or timeout.
            StoreWriteError:       The delete was rejected.
        """
        if expired_at is None:
            return await self._shielded_write(
                "remove",
                "DELETE FROM block_records WHERE id = ?",
                (record_id,),
            ) > 0
        return await self._shielded_write(
            "remove",
            "DELETE FROM block_records WHERE id = ? AND unblock_time <= ?",
            (record_id, _format_ts(expired_at)),
        ) > 0

    async def _shielded_write(self, operation: str, sql: str, params: tuple[Any, ...]) -> int:
        """Run a write to completion even when the caller stops waiting.

        aiosqlite keeps executing a statement after the awaiting coroutine is
        cancelled, so a timed-out write is left to commit or roll back (and
        release the write lock) in the background instead of being cut off
        inside its transaction.
        """
        task = asyncio.ensure_future(self._write(sql, params))
        try:
            return await self._bounded(operation, asyncio.shield(task))
        except BaseException:
            if not task.done():
                task.add_done_callback(_log_abandoned_write)
            raise

    async def _write(self, sql: str, params: tuple[Any, ...]) -> int:
        try:
            async with self._transaction() as db:
                cursor = await db.execute(sql, params)
                return cursor.rowcount
        except aiosqlite.OperationalError as exc:
            raise StoreUnavailableError(f"block store write failed: {exc}") from exc
        except (aiosqlite.Error, ValueError) as exc:
            raise StoreWriteError(f"block store write rejected: {exc}") from exc

    async def list_records(self, filters: RecordFilters) -> list[BlockRecord]:
        """Enumerate records matching filters, newest unblock_time first.

        Malformed rows are skipped with a data-integrity warning.
        """
        sql, params = _build_select_sql(filters, count_only=False)
        rows = await self._bounded("list", self._fetch_all(sql, params))
        records: list[BlockRecord] = []
        for row in rows:
            try:
                records.append(BlockRecord.from_row(row))
            except MalformedRecordError as exc:
                logger.warning(
                    "block_record_malformed",
                    actor_id=exc.record_id,
                    error=str(exc),
                )
        return records

    async def count_records(self, filters: RecordFilters) -> int:
        """Count records matching filters using SELECT COUNT(*)."""
        sql, params = _build_select_sql(filters, count_only=True)
        rows = await self._bounded("count", self._fetch_all(sql, params))
        return rows[0][0] if rows else 0

    async def _fetch_all(self, sql: str, params: list[Any]) -> list[aiosqlite.Row]:
        db = self._require_db()
        try:
            cursor = await db.execute(sql, params)
            return list(await cursor.fetchall())
        except (aiosqlite.Error, ValueError) as exc:
            raise StoreUnavailableError(f"block store read failed: {exc}") from exc

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        if self._db is None:
            return False
        try:
            await self._bounded("health_check", self._db.execute("SELECT 1"))
            return True
        except (StoreUnavailableError, aiosqlite.Error, ValueError):
            return False


# ─── SQL Builder Helper ───────────────────────────────────────────────────────


def _build_select_sql(
    filters: RecordFilters, *, count_only: bool
) -> tuple[str, list[Any]]:
    """Build a parameterized SELECT query from RecordFilters.

    Returns:
        (sql_string, params_list) — pass directly to aiosqlite.Connection.execute()
    """
    if count_only:
        sql = "SELECT COUNT(*) FROM block_records"
    else:
        sql = "SELECT id, unblock_time, reason FROM block_records"

    conditions: list[str] = []
    params: list[Any] = []

    if filters.id is not None:
        conditions.append("id = ?")
        params.append(filters.id)

    if filters.active_at is not None:
        conditions.append("unblock_time > ?")
        params.append(_format_ts(filters.active_at))

    if filters.expired_at is not None:
        conditions.append("unblock_time <= ?")
        params.append(_format_ts(filters.expired_at))

    if filters.reason_contains is not None:
        conditions.append("instr(reason, ?) > 0")
        params.append(filters.reason_contains)

    if conditions:
        sql += " WHERE " + " AND ".join(conditions)

    if not count_only:
        sql += " ORDER BY unblock_time DESC, id"
        sql += " LIMIT ? OFFSET ?"
        params.extend([filters.limit, filters.offset])

    return sql, params


def _log_abandoned_write(task: "asyncio.Future[int]") -> None:
    """Report the outcome of a write whose caller already gave up on it."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "block_store_late_write_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
    else:
        logger.info("block_store_late_write_completed", rows=task.result())
