"""FastAPI dependencies that hand the block core to route handlers.

A protected route asks for both the shared BlockManager and the RequestCache
belonging to the current request:

    @router.post("/withdraw")
    async def withdraw(
        request: Request,
        manager: BlockManager = Depends(get_block_manager),
        cache: RequestCache = Depends(get_request_cache),
    ):
        actor_id = resolve_actor_id(account_id, session_id)
        if await manager.is_blocked(cache, actor_id):
            ...deny...
        outcome = await call_decision_source(...)
        if outcome.is_rejection:
            await manager.apply_block(cache, actor_id, reason=outcome.code)

Deciding what counts as a rejection, and rendering the denial, stay with the
route.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from softban.cache import RequestCache
from softban.manager import BlockManager


async def require_ready(request: Request) -> None:
    """Raise HTTP 503 until the lifespan has finished starting up."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "softban is starting up"},
        )


def get_block_manager(request: Request) -> BlockManager:
    """The application's shared BlockManager (set by the lifespan)."""
    manager = getattr(request.app.state, "block_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "softban is starting up"},
        )
    return manager


def get_request_cache(request: Request) -> RequestCache:
    """The RequestCache scoped to this request, created on first use."""
    cache = getattr(request.state, "softban_cache", None)
    if cache is None:
        cache = RequestCache()
        request.state.softban_cache = cache
    return cache
