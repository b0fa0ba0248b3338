"""
Rate limiting configuration.

The Limiter instance is created in academy/__init__.py without default
limits; ``init_rate_limits`` attaches one limit per blueprint once the
blueprints are registered. Counters live in ``REDIS_URL`` storage,
in-memory when unset.
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

AUTH_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def rate_limit_key():
    """Signed-in callers are limited per account, everyone else per address."""
    identity = getattr(g, "identity", None)
    if identity is not None and identity.id:
        return f"account:{identity.id}"
    return request.remote_addr or "unknown"


# blueprint name -> (limit, key function or None for the limiter default)
BLUEPRINT_LIMITS = {
    "auth_bp": (AUTH_LIMIT, None),
    "user_bp": (WRITE_LIMIT, rate_limit_key),
    "admin_bp": (WRITE_LIMIT, rate_limit_key),
    "public_bp": (READ_LIMIT, None),
}

EXEMPT_ENDPOINTS = ("public_bp.health",)


def init_rate_limits(app, limiter):
    """Apply ``BLUEPRINT_LIMITS``; a no-op under TESTING."""
    if app.config.get("TESTING"):
        return

    for name, (limit, key_func) in BLUEPRINT_LIMITS.items():
        blueprint = app.blueprints.get(name)
        if blueprint is None:
            continue
        if key_func is None:
            limiter.limit(limit)(blueprint)
        else:
            limiter.limit(limit, key_func=key_func)(blueprint)

    for endpoint in EXEMPT_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view is not None:
            limiter.exempt(view)

    logger.info(
        "Rate limits applied: %s",
        ", ".join(f"{name}={limit}" for name, (limit, _) in BLUEPRINT_LIMITS.items()),
    )
