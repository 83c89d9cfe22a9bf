"""BlockRecord dataclass and timestamp helpers for the durable store.

A BlockRecord is the stable, auditable cross-process contract:

    id            — actor identity being blocked (primary key)
    unblock_time  — absolute expiry of the block (aware UTC datetime)
    reason        — optional audit note, e.g. "external rejection code X"

Records are validated on construction. Backends build them from stored rows
via BlockRecord.from_row(), which raises MalformedRecordError instead of
letting a half-populated row reach the decision path.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from softban.errors import MalformedRecordError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(raw: Any) -> datetime:
    """Parse a stored timestamp (ISO-8601 text or datetime) into aware UTC.

    Raises:
        ValueError: If raw is None, empty, or not a recognisable timestamp.
    """
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"not a timestamp: {raw!r}")
    return ensure_utc(datetime.fromisoformat(raw.strip()))


# ─── BlockRecord ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BlockRecord:
    """Durable block for one actor identity."""

    id: str
    unblock_time: datetime
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise MalformedRecordError("block record id must be a non-empty string")
        if not isinstance(self.unblock_time, datetime):
            raise MalformedRecordError(
                "block record is missing a valid unblock_time", record_id=self.id
            )
        if self.reason is not None and not isinstance(self.reason, str):
            raise MalformedRecordError("block record reason must be text", record_id=self.id)
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "unblock_time", ensure_utc(self.unblock_time))

    def is_active(self, now: datetime) -> bool:
        """True while now is strictly before unblock_time."""
        return self.unblock_time > ensure_utc(now)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BlockRecord":
        """Build a record from a stored row (dict-like).

        Raises:
            MalformedRecordError: On a missing/blank id or an unparseable
                                  unblock_time.
        """
        record_id = row["id"]
        try:
            unblock_time = parse_timestamp(row["unblock_time"])
        except (ValueError, TypeError) as exc:
            raise MalformedRecordError(
                f"unreadable unblock_time {row['unblock_time']!r}",
                record_id=record_id if isinstance(record_id, str) else None,
            ) from exc
        return cls(id=record_id, unblock_time=unblock_time, reason=row["reason"])

    def to_dict(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """JSON-friendly view used by the inspection API."""
        payload: dict[str, Any] = {
            "id": self.id,
            "unblock_time": self.unblock_time.isoformat(),
            "reason": self.reason,
        }
        if now is not None:
            payload["active"] = self.is_active(now)
        return payload


# ─── RecordFilters ────────────────────────────────────────────────────────────


@dataclass
class RecordFilters:
    """Query filters for BlockStore.list_records() and count_records().

    All fields are optional. An empty RecordFilters() returns every record up
    to limit=50, newest unblock_time first.
    """

    id: Optional[str] = None
    """Exact actor identity."""
    active_at: Optional[datetime] = None
    """Only records whose unblock_time is after this instant (still blocking)."""
    expired_at: Optional[datetime] = None
    """Only records whose unblock_time is at or before this instant (zombies awaiting cleanup)."""
    reason_contains: Optional[str] = None
    """Substring match on reason."""
    limit: int = 50
    """Maximum number of records to return (page size)."""
    offset: int = 0
    """Number of records to skip."""
