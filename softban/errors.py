"""Exception hierarchy for softban.

Store backends raise these; BlockManager is the single place that catches
them and degrades to a boolean outcome plus a log entry:

    SoftbanError
    ├── StoreError
    │   ├── StoreUnavailableError  — store unreachable or timed out
    │   └── StoreWriteError        — upsert/remove rejected
    └── MalformedRecordError       — durable row fails BlockRecord validation
"""

from __future__ import annotations


class SoftbanError(Exception):
    """Base class for all softban errors."""


class StoreError(SoftbanError):
    """The durable store failed to complete an operation."""


class StoreUnavailableError(StoreError):
    """The durable store could not be reached (or did not answer in time)."""


class StoreWriteError(StoreError):
    """The durable store rejected a write or delete."""


class MalformedRecordError(SoftbanError):
    """A durable record is missing required fields or holds invalid values."""

    def __init__(self, message: str, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id
