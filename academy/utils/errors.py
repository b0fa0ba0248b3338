"""Standardised API error responses and the error boundary.

Usage
-----
    from academy.utils.errors import api_error, E

    return api_error(E.VALIDATION_FAILED, "training_id is required")

Services raise ``academy.core.exceptions.AcademyError`` subclasses; the
handlers registered by ``register_error_handlers`` render every kind via
``STATUS_BY_KIND``. That table must cover every ``ErrorKind``: the module
refuses to import otherwise.
"""

from __future__ import annotations

import logging

from flask import g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from academy.core.exceptions import AcademyError, ErrorKind, InternalError

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (one per ErrorKind)."""

    AUTHENTICATION_REQUIRED = ErrorKind.AUTHENTICATION_REQUIRED.value
    TOKEN_EXPIRED = ErrorKind.TOKEN_EXPIRED.value
    TOKEN_INVALID = ErrorKind.TOKEN_INVALID.value
    INSUFFICIENT_PERMISSIONS = ErrorKind.INSUFFICIENT_PERMISSIONS.value
    RESOURCE_NOT_FOUND = ErrorKind.RESOURCE_NOT_FOUND.value
    RESOURCE_CONFLICT = ErrorKind.RESOURCE_CONFLICT.value
    INVALID_STATE = ErrorKind.INVALID_STATE.value
    SESSION_EXPIRED = ErrorKind.SESSION_EXPIRED.value
    VALIDATION_FAILED = ErrorKind.VALIDATION_FAILED.value
    STORAGE_UNAVAILABLE = ErrorKind.STORAGE_UNAVAILABLE.value
    INTERNAL = ErrorKind.INTERNAL_ERROR.value


# ── HTTP status mapping ───────────────────────────────────────────────
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.AUTHENTICATION_REQUIRED: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.TOKEN_INVALID: 401,
    ErrorKind.INSUFFICIENT_PERMISSIONS: 403,
    ErrorKind.RESOURCE_NOT_FOUND: 404,
    ErrorKind.RESOURCE_CONFLICT: 409,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.SESSION_EXPIRED: 400,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL_ERROR: 500,
}

_unmapped = set(ErrorKind) - set(STATUS_BY_KIND)
if _unmapped:
    raise RuntimeError(f"Error kinds without an HTTP status: {sorted(k.value for k in _unmapped)}")

# Kinds whose message is fixed at the boundary regardless of what was raised
_SAFE_MESSAGES = {
    ErrorKind.STORAGE_UNAVAILABLE: "Service temporarily unavailable",
    ErrorKind.INTERNAL_ERROR: "Internal server error",
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation, safe for clients.
    status : int, optional
        HTTP status override.  Falls back to the kind's status, then ``400``.
    details : dict, optional
        Extra structured payload (field errors etc.).
    """
    try:
        default_status = STATUS_BY_KIND[ErrorKind(code)]
    except ValueError:
        default_status = 400
    http_status = status or default_status

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def render_academy_error(exc: AcademyError):
    """Render one error of the closed hierarchy."""
    status = STATUS_BY_KIND[exc.kind]
    message = _SAFE_MESSAGES.get(exc.kind, exc.message)

    log_extra = {
        "status": status,
        "path": request.path,
        "request_id": getattr(g, "request_id", None),
        "security_code": exc.kind.value,
    }
    if status >= 500:
        logger.error("%s: %s (%s)", exc.kind.value, exc.message, exc.log_detail,
                     exc_info=exc.__cause__ is not None, extra=log_extra)
    elif exc.log_detail:
        logger.info("%s: %s", exc.kind.value, exc.log_detail, extra=log_extra)

    return api_error(exc.kind.value, message, status=status, details=exc.details or None)


def register_error_handlers(app) -> None:
    """Attach the error boundary to the app."""

    @app.errorhandler(AcademyError)
    def _academy_error(exc):
        return render_academy_error(exc)

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc):
        # Reached only when a query ran outside an access_context block
        from academy.storage.errors import classify_db_error
        return render_academy_error(classify_db_error(exc))

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        if not request.path.startswith("/api/"):
            return exc
        names = {
            404: "Not found",
            405: "Method not allowed",
            413: "Request body too large",
            415: "Content-Type must be application/json",
            429: "Too many requests",
        }
        body = {"error": names.get(exc.code, exc.name), "code": f"HTTP_{exc.code}"}
        if exc.code == 404:
            body["path"] = request.path
        if exc.code == 429:
            body["retry_after"] = exc.description
        return jsonify(body), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return render_academy_error(InternalError(log_detail=repr(exc)))
