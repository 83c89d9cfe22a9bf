"""Read-only inspection API for durable block records.

No block decision depends on these routes; they exist for audit. Lookups here
never clean up expired records: that only happens on the decision path.

Routes (prefixed with /admin/api in main.py):
    GET /blocks             — enumerate records (filters: active, reason, limit, offset)
    GET /blocks/{actor_id}  — one record, 404 if absent
    GET /health             — store reachability + effective block duration
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from softban.api.dependencies import get_block_manager, require_ready
from softban.constants import ADMIN_DEFAULT_PAGE_SIZE, ADMIN_MAX_PAGE_SIZE
from softban.errors import MalformedRecordError, StoreError
from softban.manager import BlockManager
from softban.store.models import RecordFilters, utcnow
from softban.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["admin"])


def _store_unavailable(exc: Exception) -> HTTPException:
    logger.warning(
        "admin_store_error",
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return HTTPException(
        status_code=503,
        detail={"error": "block store unavailable", "error_type": type(exc).__name__},
    )


# ─── GET /blocks ──────────────────────────────────────────────────────────────


@router.get("/blocks", dependencies=[Depends(require_ready)])
async def list_blocks(
    active: Optional[bool] = None,
    reason: Optional[str] = None,
    limit: int = ADMIN_DEFAULT_PAGE_SIZE,
    offset: int = 0,
    manager: BlockManager = Depends(get_block_manager),
) -> dict[str, Any]:
    """Enumerate durable block records, newest unblock_time first.

    Query params:
        active:  true → only records still blocking; false → only expired
                 records awaiting lazy cleanup; omitted → both
        reason:  substring match on the audit note
        limit:   page size (1–200, default 50)
        offset:  records to skip
    """
    now = utcnow()
    filters = RecordFilters(
        active_at=now if active is True else None,
        expired_at=now if active is False else None,
        reason_contains=reason,
        limit=max(1, min(limit, ADMIN_MAX_PAGE_SIZE)),
        offset=max(0, offset),
    )

    try:
        records = await manager.store.list_records(filters)
        total = await manager.store.count_records(filters)
    except StoreError as exc:
        raise _store_unavailable(exc) from exc

    return {
        "records": [record.to_dict(now) for record in records],
        "total": total,
    }


# ─── GET /blocks/{actor_id} ───────────────────────────────────────────────────


@router.get("/blocks/{actor_id}", dependencies=[Depends(require_ready)])
async def get_block(
    actor_id: str,
    manager: BlockManager = Depends(get_block_manager),
) -> dict[str, Any]:
    """Look up one actor's durable record without touching it."""
    try:
        record = await manager.store.get(actor_id)
    except StoreError as exc:
        raise _store_unavailable(exc) from exc
    except MalformedRecordError as exc:
        raise HTTPException(
            status_code=422,
            detail={"error": "malformed block record", "id": actor_id, "message": str(exc)},
        ) from exc

    if record is None:
        raise HTTPException(status_code=404, detail={"error": "no block record", "id": actor_id})
    return record.to_dict(utcnow())


# ─── GET /health ──────────────────────────────────────────────────────────────


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Store reachability. 503 while starting up.

    A reachable-but-degraded store is reported, not raised: the decision path
    keeps working (fail open) while the store is down.
    """
    await require_ready(request)
    manager: BlockManager = get_block_manager(request)

    store_ok = await manager.store.health_check()
    return {
        "status": "ok" if store_ok else "degraded",
        "store": "healthy" if store_ok else "unreachable",
        "backend": type(manager.store).__name__,
        "block_duration_seconds": int(manager.block_duration.total_seconds()),
    }
