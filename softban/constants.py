"""Shared constants for softban.

Default durations, timeouts and paths live here so config.py, the store
backends and the API agree on a single value.
"""

# ─── Block lifecycle ──────────────────────────────────────────────────────────

# Default cooldown applied by BlockManager.apply_block() when the config file
# does not set block.duration_seconds. 10 minutes.
DEFAULT_BLOCK_DURATION_SECONDS: int = 600

# Upper bound for block.duration_seconds. 30 days; a soft ban is a cooldown,
# and now + duration must stay inside the datetime range.
MAX_BLOCK_DURATION_SECONDS: int = 30 * 24 * 60 * 60

# ─── Durable store ────────────────────────────────────────────────────────────

# Supported durable store backends (config store.backend).
STORE_BACKEND_SQLITE: str = "sqlite"
STORE_BACKEND_MEMORY: str = "memory"
VALID_STORE_BACKENDS: frozenset[str] = frozenset({STORE_BACKEND_SQLITE, STORE_BACKEND_MEMORY})

DEFAULT_STORE_BACKEND: str = STORE_BACKEND_SQLITE
DEFAULT_STORE_PATH: str = "~/.softban/blocks.db"

# Upper bound for a single store call. A wedged database resolves to
# StoreUnavailableError after this long instead of holding the request.
DEFAULT_STORE_TIMEOUT_MS: int = 2_000

# SQLite busy_timeout. Kept below DEFAULT_STORE_TIMEOUT_MS so lock contention
# surfaces as a driver error before the outer asyncio timeout fires.
SQLITE_BUSY_TIMEOUT_MS: int = 1_500

# ─── Inspection API ───────────────────────────────────────────────────────────

ADMIN_DEFAULT_PAGE_SIZE: int = 50
ADMIN_MAX_PAGE_SIZE: int = 200

# ─── Server ───────────────────────────────────────────────────────────────────

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 4343
