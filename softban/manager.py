"""BlockManager — orchestrates the request cache and the durable store.

Decision path (is_blocked / block_expiry):
  1. RequestCache reports an unexpired block  → blocked, no I/O
  2. RequestCache reports an expired block    → clear the local flag, fall through
  3. Durable store lookup:
       no record               → not blocked
       unblock_time > now      → resync the cache, blocked
       unblock_time <= now     → best-effort remove (only if still expired), not blocked
  4. Store unreachable         → fail open (not blocked), logged
  5. Malformed record          → treated as no record, logged

Mutation path (apply_block):
  1. unblock_time = now + block_duration
  2. write the request cache first, unconditionally
  3. upsert the durable record; a failure is logged and swallowed, the local
     block stays in force for the current context

Expiry is evaluated lazily on read; there is no timer. Clearing a stale local
flag in step 2 does not by itself remove the durable record: the record is
only deleted when a durable read in step 3 sees it expired.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from softban.cache import ActiveBlock, RequestCache
from softban.constants import MAX_BLOCK_DURATION_SECONDS
from softban.errors import MalformedRecordError, StoreError
from softban.store.models import utcnow
from softban.store.protocol import BlockStore
from softban.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class BlockManager:
    """Two-tier soft-ban state for actor identities.

    Args:
        store:          Durable, cross-process BlockStore.
        block_duration: Cooldown applied by apply_block().
        clock:          Returns the current aware UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        store: BlockStore,
        block_duration: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        if block_duration <= timedelta(0):
            raise ValueError(f"block_duration must be positive, got {block_duration}")
        if block_duration > timedelta(seconds=MAX_BLOCK_DURATION_SECONDS):
            raise ValueError(
                f"block_duration must be at most {MAX_BLOCK_DURATION_SECONDS}s, got {block_duration}"
            )
        self._store = store
        self._block_duration = block_duration
        self._clock = clock

    @property
    def store(self) -> BlockStore:
        return self._store

    @property
    def block_duration(self) -> timedelta:
        return self._block_duration

    async def is_blocked(self, cache: RequestCache, actor_id: str) -> bool:
        """True if actor_id must be denied the protected action right now.

        Never raises for store failures: an unreachable store fails open.
        """
        return await self.block_expiry(cache, actor_id) is not None

    async def block_expiry(self, cache: RequestCache, actor_id: str) -> Optional[datetime]:
        """Return the active block's unblock_time, or None when not blocked."""
        _require_actor_id(actor_id)
        now = self._clock()

        local = cache.check_local(actor_id)
        if isinstance(local, ActiveBlock):
            if local.expiry > now:
                return local.expiry
            cache.clear_local(actor_id)
            logger.debug("block_cache_stale", actor_id=actor_id, expiry=local.expiry.isoformat())

        try:
            record = await self._store.get(actor_id)
        except StoreError as exc:
            logger.warning(
                "block_lookup_failed",
                actor_id=actor_id,
                error=str(exc),
                error_type=type(exc).__name__,
                outcome="fail_open",
            )
            return None
        except MalformedRecordError as exc:
            logger.warning(
                "block_record_malformed",
                actor_id=actor_id,
                error=str(exc),
            )
            return None

        if record is None:
            return None

        if record.is_active(now):
            cache.set_local(actor_id, record.unblock_time)
            return record.unblock_time

        await self._cleanup_expired(actor_id, record.unblock_time, now)
        return None

    async def apply_block(
        self, cache: RequestCache, actor_id: str, reason: Optional[str] = None
    ) -> datetime:
        """Block actor_id for block_duration, starting now.

        The current context is blocked even when the durable write fails.

        Returns:
            The unblock_time written to both tiers.
        """
        _require_actor_id(actor_id)
        unblock_time = self._clock() + self._block_duration
        cache.set_local(actor_id, unblock_time)

        try:
            await self._store.upsert(actor_id, unblock_time, reason)
        except StoreError as exc:
            logger.error(
                "block_persist_failed",
                actor_id=actor_id,
                unblock_time=unblock_time.isoformat(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            logger.info(
                "block_applied",
                actor_id=actor_id,
                unblock_time=unblock_time.isoformat(),
                reason=reason,
            )
        return unblock_time

    async def _cleanup_expired(self, actor_id: str, unblock_time: datetime, now: datetime) -> None:
        # Conditional delete: a block re-applied elsewhere since the read survives
        try:
            removed = await self._store.remove(actor_id, expired_at=now)
        except StoreError as exc:
            logger.warning(
                "block_cleanup_failed",
                actor_id=actor_id,
                unblock_time=unblock_time.isoformat(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            logger.info(
                "block_expired",
                actor_id=actor_id,
                unblock_time=unblock_time.isoformat(),
                removed=bool(removed),
            )


def _require_actor_id(actor_id: str) -> None:
    if not isinstance(actor_id, str) or not actor_id:
        raise ValueError("actor_id must be a non-empty string")
