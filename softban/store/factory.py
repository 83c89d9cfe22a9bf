"""Block store factory — backend selection and initialization.

Backend selection:
  1. config.store.backend ("sqlite" | "memory"); SOFTBAN_STORE_BACKEND has
     already been folded into config by load_config()
  2. Default: SQLiteBlockStore

SQLiteBlockStore path:
  config.store.path (SOFTBAN_STORE_PATH override applied by load_config())

PRAGMA version guard:
  SQLiteBlockStore.initialize() raises RuntimeError if PRAGMA user_version
  is not 0 (fresh) or 1 (expected). The FastAPI lifespan propagates this
  RuntimeError to refuse startup.
"""

from __future__ import annotations

from softban.config import Config
from softban.constants import STORE_BACKEND_MEMORY
from softban.store.protocol import BlockStore
from softban.utils.logger import get_logger

logger = get_logger(__name__)


async def create_block_store(config: Config) -> BlockStore:
    """Create and initialize the configured block store.

    Raises:
      RuntimeError: If SQLiteBlockStore.initialize() finds an incompatible
                    schema version.

    Returns:
        Initialized BlockStore ready for use.
    """
    if config.store.backend == STORE_BACKEND_MEMORY:
        return _create_memory_store()
    return await _create_sqlite_store(config)


def _create_memory_store() -> BlockStore:
    from softban.store.memory_backend import MemoryBlockStore

    logger.warning(
        "block_store_selected",
        backend="MemoryBlockStore",
        message="blocks are process-local and are lost on restart",
    )
    return MemoryBlockStore()


async def _create_sqlite_store(config: Config) -> BlockStore:
    from softban.store.sqlite_backend import SQLiteBlockStore

    store = SQLiteBlockStore(
        db_path=config.store.path,
        timeout_s=config.store.timeout_ms / 1000.0,
    )
    # initialize() raises RuntimeError if user_version is incompatible.
    await store.initialize()

    logger.info(
        "block_store_selected",
        backend="SQLiteBlockStore",
        db_path=store.db_path,
        timeout_ms=config.store.timeout_ms,
    )
    return store
