"""softban — temporary access denial ("soft ban") after external rejections.

    from softban import BlockManager, RequestCache

    manager = BlockManager(store, timedelta(minutes=10))
    cache = RequestCache()                      # one per request/session
    if await manager.is_blocked(cache, actor_id):
        ...
    await manager.apply_block(cache, actor_id, reason="reject5")
"""

from softban.cache import RequestCache
from softban.manager import BlockManager

__all__ = ["BlockManager", "RequestCache"]
