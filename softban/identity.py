"""Actor identity resolution.

Blocks are keyed by a stable identity string. Authenticated actors are keyed
by account ("account:<id>") so a block follows them across sessions;
unauthenticated actors fall back to their session ("session:<id>").
"""

from __future__ import annotations

from typing import Optional

ACCOUNT_PREFIX = "account:"
SESSION_PREFIX = "session:"


def resolve_actor_id(account_id: Optional[str], session_id: Optional[str] = None) -> str:
    """Return the block key for an actor.

    Raises:
        ValueError: If neither an account id nor a session id is available.
    """
    account = (account_id or "").strip()
    if account:
        return f"{ACCOUNT_PREFIX}{account}"
    session = (session_id or "").strip()
    if session:
        return f"{SESSION_PREFIX}{session}"
    raise ValueError("cannot identify actor: no account id and no session id")
