"""
Database error classification.

Maps SQLAlchemy / DBAPI failures and storage-policy rejections onto the
platform error taxonomy:

    storage policy / RLS (42501)  -> InsufficientPermissions + security event
    unique violation (23505)      -> ResourceConflict
    foreign key (23503)           -> ValidationFailed
    not-null (23502), check       -> ValidationFailed
    connection / pool failures    -> StorageUnavailable
    anything else                 -> InternalError
"""

import logging

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)

from academy.core.exceptions import (
    AcademyError,
    InsufficientPermissions,
    InternalError,
    ResourceConflict,
    StoragePolicyViolation,
    StorageUnavailable,
    ValidationFailed,
)
from academy.services.security_observability import record_security_event

logger = logging.getLogger(__name__)

_RLS_MARKERS = ("row-level security", "row level security", "permission denied")


def _pgcode(exc) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None)


def _message(exc) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc).lower()


def _access_denied(exc, *, model=None, operation=None, reason=None) -> InsufficientPermissions:
    record_security_event(
        event_type="storage_policy_violation",
        reason=reason or _message(exc)[:200],
        severity="high",
        details={"model": model, "operation": operation},
    )
    return InsufficientPermissions("Access denied", log_detail=str(exc))


def _conflict(text: str) -> ResourceConflict:
    if "email" in text:
        return ResourceConflict("Email already exists")
    if "enrollment" in text:
        return ResourceConflict("Already enrolled in this training program")
    if "certificate_id" in text:
        return ResourceConflict("Certificate identifier already exists")
    return ResourceConflict("Resource already exists")


def classify_db_error(exc: BaseException) -> AcademyError:
    """Translate a storage-layer exception into an ``AcademyError``."""
    if isinstance(exc, AcademyError):
        return exc

    if isinstance(exc, StoragePolicyViolation):
        return _access_denied(exc, model=exc.model, operation=exc.operation, reason=exc.reason)

    code = _pgcode(exc)
    text = _message(exc)

    if code == "42501" or any(marker in text for marker in _RLS_MARKERS):
        return _access_denied(exc)

    if isinstance(exc, IntegrityError):
        if code == "23505" or "unique" in text or "duplicate key" in text:
            return _conflict(text)
        if code == "23503" or "foreign key" in text:
            return ValidationFailed("Referenced resource does not exist", log_detail=text)
        if code == "23502" or "not null" in text:
            return ValidationFailed("Required field is missing", log_detail=text)
        return ValidationFailed("Constraint violation", log_detail=text)

    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)):
        logger.error("Storage unavailable: %s", exc)
        return StorageUnavailable(log_detail=str(exc))

    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        logger.error("Storage connection invalidated: %s", exc)
        return StorageUnavailable(log_detail=str(exc))

    if isinstance(exc, SQLAlchemyError):
        logger.exception("Unclassified database error")
        return InternalError(log_detail=str(exc))

    return InternalError(log_detail=repr(exc))
