"""
Academy Enrollment API
Blueprint registry.
"""

from flask import request


def query_limit(default_limit=200, max_limit=1000) -> int:
    """Read ``?limit=`` for list endpoints (default 200, capped at max_limit)."""
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        return default_limit
    return max(1, min(limit, max_limit))


def json_body() -> dict:
    """Request JSON object, or an empty dict for a missing / non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
