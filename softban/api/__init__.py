"""softban HTTP integration.

    dependencies.py — get_block_manager / get_request_cache / require_ready
    admin.py        — read-only inspection routes for durable block records
    middleware.py   — AdminLocalhostMiddleware (loopback-only /admin/*)
"""
