"""
Permission Decorators — Authorization gate for route protection.

Provides decorators that check the identity attached by the authentication
gate (``academy.middleware.jwt_auth``) before allowing access to an endpoint.

Usage:
    @bp.route("/api/v1/admin/users", methods=["GET"])
    @login_required
    @require_role(ROLE_ADMINISTRATOR)
    def list_users():
        ...

    @bp.route("/api/v1/user/accounts/<user_id>", methods=["GET"])
    @login_required
    @require_self_or_admin("user_id")
    def get_account(user_id):
        ...

    @bp.route("/api/v1/user/enrollments/<enrollment_id>", methods=["GET"])
    @login_required
    @require_role(ROLE_MEMBER, ROLE_ADMINISTRATOR)
    @require_ownership(Enrollment, "enrollment_id")
    def get_enrollment(enrollment_id):
        ...

A predicate that runs without an identity is a wiring bug (missing
``@login_required``); it denies with AuthenticationRequired and records a
high-severity ``authorization_without_identity`` event so it stands out from
ordinary unauthenticated requests.

The storage policies make the same decisions again below the service layer;
these decorators are the first of two independent checks.
"""

import functools
import logging

from flask import g, request
from sqlalchemy import select

from academy.core.exceptions import (
    AcademyError,
    AuthenticationRequired,
    InsufficientPermissions,
    ResourceNotFound,
    StorageUnavailable,
    ValidationFailed,
)
from academy.core.identity import ROLE_ADMINISTRATOR
from academy.services.security_observability import record_security_event
from academy.storage.context import system_context

logger = logging.getLogger(__name__)


def _require_identity(predicate: str):
    identity = getattr(g, "identity", None)
    if identity is None:
        logger.error(
            "Authorization predicate '%s' reached without identity on %s",
            predicate, request.endpoint,
        )
        record_security_event(
            event_type="authorization_without_identity",
            reason=f"{predicate} invoked before authentication",
            severity="high",
            details={"endpoint": request.endpoint},
        )
        raise AuthenticationRequired()
    return identity


def require_role(*roles: str):
    """
    Decorator: require the identity's role to be one of ``roles``.

    Args:
        roles: Allowed role names, e.g. ROLE_ADMINISTRATOR
    """
    allowed = tuple(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = _require_identity("require_role")
            if identity.role not in allowed:
                logger.warning(
                    "Account %s denied: role '%s' not in %s on %s",
                    identity.id, identity.role, allowed, request.endpoint,
                )
                record_security_event(
                    event_type="role_denied",
                    reason=f"role {identity.role} not allowed",
                    details={
                        "attempted_role": identity.role,
                        "allowed_roles": list(allowed),
                        "endpoint": request.endpoint,
                    },
                )
                raise InsufficientPermissions()
            return f(*args, **kwargs)
        return decorated
    return decorator


require_admin = require_role(ROLE_ADMINISTRATOR)


def require_self_or_admin(param: str = "user_id"):
    """
    Decorator: administrators pass; others only when ``param`` (path or JSON
    body) equals their own id.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = _require_identity("require_self_or_admin")
            if identity.is_administrator:
                return f(*args, **kwargs)

            target = kwargs.get(param)
            if target is None:
                target = (request.get_json(silent=True) or {}).get(param)
            if target is None:
                raise ValidationFailed(f"{param} is required")

            if str(target) != str(identity.id):
                logger.warning(
                    "Account %s denied access to account %s on %s",
                    identity.id, target, request.endpoint,
                )
                record_security_event(
                    event_type="self_access_denied",
                    reason="target account is not the caller",
                    details={"target_id": str(target), "endpoint": request.endpoint},
                )
                raise InsufficientPermissions()
            return f(*args, **kwargs)
        return decorated
    return decorator


def _load_owner(model, resource_id, owner_field):
    """Owner column of one row, read under the system principal."""
    column = getattr(model, owner_field)
    with system_context() as session:
        row = session.execute(
            select(column).where(model.id == resource_id)
        ).first()
    return row


def require_ownership(model, id_param: str = "id", owner_field: str | None = None):
    """
    Decorator: administrators pass; others must own the row ``model[id_param]``.

    The owner column defaults to ``model.OWNER_FIELD``.

    Missing row -> ResourceNotFound. Owner mismatch -> InsufficientPermissions.
    Storage failure during the check -> StorageUnavailable (never fails open).
    """
    resource = model.__name__
    owner_field = owner_field or model.OWNER_FIELD

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = _require_identity("require_ownership")
            if identity.is_administrator:
                return f(*args, **kwargs)

            resource_id = kwargs.get(id_param)
            if resource_id is None:
                raise ValidationFailed(f"{id_param} is required")

            try:
                row = _load_owner(model, resource_id, owner_field)
            except StorageUnavailable:
                raise
            except AcademyError as e:
                logger.error("Ownership check on %s %s failed: %s", resource, resource_id, e)
                raise StorageUnavailable(log_detail=str(e))

            if row is None:
                raise ResourceNotFound(resource, resource_id=resource_id)

            if str(row[0]) != str(identity.id):
                logger.warning(
                    "Account %s denied: %s %s owned by another account",
                    identity.id, resource, resource_id,
                )
                record_security_event(
                    event_type="ownership_mismatch",
                    reason=f"{resource} not owned by caller",
                    severity="high",
                    details={"resource": resource, "resource_id": str(resource_id)},
                )
                raise InsufficientPermissions()
            return f(*args, **kwargs)
        return decorated
    return decorator
