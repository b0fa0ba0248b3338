"""
JWT Auth Middleware — Authentication gate.

``init_jwt_middleware`` parses ``Authorization: Bearer <token>`` on every
API request and leaves the outcome on ``flask.g``:

    g.identity    Identity on a valid token, else None
    g.auth_error  the TokenExpired / TokenInvalid raised for a bad token

Enforcement happens per route:

    @login_required   no token -> AuthenticationRequired; bad token -> the
                      specific TokenExpired / TokenInvalid. Fails closed.
    @optional_auth    proceeds anonymously when the token is absent or bad.

The client only sees the generic message of the kind; the specific reason
(malformed, bad_signature, invalid_role, ...) is logged server-side.
"""

import functools
import logging

from flask import g, request

from academy.core.exceptions import AuthenticationRequired, TokenExpired, TokenInvalid
from academy.services.jwt_service import verify_token
from academy.services.security_observability import record_security_event

logger = logging.getLogger(__name__)

# Paths that never look at the Authorization header
JWT_SKIP_PREFIXES = (
    "/api/v1/public/health",
    "/static/",
)


def _bearer_token(header: str) -> str | None:
    """Extract the token from an Authorization header value."""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip()


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        # Clear auth context
        g.identity = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return

        token = _bearer_token(auth_header)
        if not token:
            g.auth_error = TokenInvalid("malformed", log_detail="Authorization header is not a bearer token")
            return

        try:
            g.identity = verify_token(token)
        except (TokenExpired, TokenInvalid) as e:
            g.auth_error = e


def _reason(error) -> str:
    return getattr(error, "reason", None) or error.kind.value.lower()


def login_required(f):
    """Decorator: require a valid session token (fails closed)."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        identity = getattr(g, "identity", None)
        if identity is not None:
            return f(*args, **kwargs)

        error = getattr(g, "auth_error", None)
        if error is None:
            raise AuthenticationRequired()

        logger.info(
            "Token rejected on %s: %s %s",
            request.path, _reason(error), error.log_detail or "",
        )
        record_security_event(
            event_type="token_rejected",
            reason=_reason(error),
            severity="warning",
            details={"endpoint": request.endpoint},
        )
        raise error
    return decorated


def optional_auth(f):
    """Decorator: attach identity when a valid token is present, else proceed anonymously."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        error = getattr(g, "auth_error", None)
        if error is not None:
            logger.debug("Ignoring unusable token on %s: %s", request.path, _reason(error))
        return f(*args, **kwargs)
    return decorated


def current_identity():
    """Identity attached by the gate, or None."""
    return getattr(g, "identity", None)
