"""
Platform-wide error taxonomy.

Every failure that crosses a service boundary is one of the classes below.
Each carries an ``ErrorKind`` tag; the HTTP boundary
(``academy.utils.errors``) maps every kind to a status code and a safe
message, and refuses to start if a kind is left unmapped.

Usage:
    from academy.core.exceptions import ResourceNotFound, InvalidState

    raise ResourceNotFound("Enrollment", resource_id=enrollment_id)
    raise InvalidState("Enrollment is not awaiting payment")

``log_detail`` is for server-side logs only and never reaches the client.
"""

from enum import Enum


class ErrorKind(str, Enum):
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AcademyError(Exception):
    """Base of the closed error hierarchy. Do not raise directly."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    default_message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict | None = None,
        log_detail: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        self.log_detail = log_detail
        super().__init__(self.message)


class AuthenticationRequired(AcademyError):
    kind = ErrorKind.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"


class TokenExpired(AcademyError):
    kind = ErrorKind.TOKEN_EXPIRED
    default_message = "Token has expired"


class TokenInvalid(AcademyError):
    """Signature, structure or claim check failed.

    Args:
        reason: ``malformed`` | ``bad_signature`` | ``invalid_role`` |
                ``missing_claims``. Logged, not returned.
    """

    kind = ErrorKind.TOKEN_INVALID
    default_message = "Invalid token"

    def __init__(self, reason: str = "malformed", **kwargs) -> None:
        self.reason = reason
        super().__init__(**kwargs)


class InsufficientPermissions(AcademyError):
    kind = ErrorKind.INSUFFICIENT_PERMISSIONS
    default_message = "Insufficient permissions"


class ResourceNotFound(AcademyError):
    """Raised when a resource does not exist or is not visible to the caller.

    Security note: storage policies hide rows owned by other accounts, so a
    cross-owner lookup and a genuinely missing row both end up here. A 403
    would confirm the resource exists; a 404 does not.
    """

    kind = ErrorKind.RESOURCE_NOT_FOUND
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", resource_id=None, **kwargs) -> None:
        self.resource = resource
        self.resource_id = resource_id
        kwargs.setdefault("message", f"{resource} not found")
        kwargs.setdefault("log_detail", f"{resource} id={resource_id} not found")
        super().__init__(**kwargs)


class ResourceConflict(AcademyError):
    kind = ErrorKind.RESOURCE_CONFLICT
    default_message = "Resource already exists"


class InvalidState(AcademyError):
    kind = ErrorKind.INVALID_STATE
    default_message = "Operation not allowed in the current state"


class SessionExpired(AcademyError):
    kind = ErrorKind.SESSION_EXPIRED
    default_message = "Payment session expired. Please retry payment."


class ValidationFailed(AcademyError):
    kind = ErrorKind.VALIDATION_FAILED
    default_message = "Validation failed"


class StorageUnavailable(AcademyError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class InternalError(AcademyError):
    kind = ErrorKind.INTERNAL_ERROR
    default_message = "Internal server error"


class StoragePolicyViolation(Exception):
    """Raised by the storage-layer row policies, below the service layer.

    Never surfaces to clients as-is: ``academy.storage.errors`` folds it into
    ``InsufficientPermissions`` and records a security event.
    """

    def __init__(self, model: str, operation: str, reason: str) -> None:
        self.model = model
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} on {model} rejected: {reason}")
