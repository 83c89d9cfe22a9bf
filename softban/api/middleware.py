"""Admin localhost enforcement middleware for softban.

Block records carry actor identities and rejection reasons, so the read-only
inspection routes under /admin/* are restricted to loopback clients. This
holds even if server.host is misconfigured to 0.0.0.0.

Returns HTTP 403 for any /admin/* request whose source IP is not a loopback
address. Other paths are passed through unchanged.
"""

from __future__ import annotations

import os

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from softban.utils.logger import get_logger

logger = get_logger(__name__)

_LOOPBACK_HOSTS: frozenset[str] = frozenset({"127.0.0.1", "::1", "localhost"})

_ADMIN_PREFIX = "/admin"

_FORBIDDEN_BODY: dict = {
    "error": {
        "message": "Admin access is restricted to localhost",
        "code": "forbidden",
    }
}


def _localhost_check_enabled() -> bool:
    """Return True unless SOFTBAN_ADMIN_LOCALHOST_ONLY=false.

    Defaults to True (enforced). Set to false only in automated tests.
    """
    return os.environ.get("SOFTBAN_ADMIN_LOCALHOST_ONLY", "true").lower() != "false"


class AdminLocalhostMiddleware(BaseHTTPMiddleware):
    """Restrict all /admin/* requests to loopback origins."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not request.url.path.startswith(_ADMIN_PREFIX):
            return await call_next(request)

        if not _localhost_check_enabled():
            return await call_next(request)

        client_host = request.client.host if request.client else None

        if client_host not in _LOOPBACK_HOSTS:
            logger.warning(
                "Admin access denied: non-localhost origin",
                client_host=client_host,
                path=request.url.path,
            )
            return JSONResponse(status_code=403, content=_FORBIDDEN_BODY)

        return await call_next(request)
