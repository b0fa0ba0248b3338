"""
Storage-layer row policies.

These policies decide from the ``AccessContext`` bound to the session's
connection, never from arguments passed by the caller, so a bypassed or
buggy authorization gate still cannot read or write another account's rows.
They run for every dialect as SQLAlchemy session events:

    do_orm_execute  adds ``with_loader_criteria`` row filters to every ORM
                    SELECT and rejects ORM bulk UPDATE/DELETE outside an
                    unrestricted context
    before_flush    checks every pending INSERT/UPDATE/DELETE

PostgreSQL deployments additionally carry native RLS policies expressing the
same rules (``academy.storage.rls``).

Rules for restricted contexts (member, anonymous, unbound):

    accounts            member: own row only; role / is_admin immutable
                        anonymous: insert member accounts only
    training_programs   read active rows only; no writes
    enrollments,
    payments,
    certificates        member: own rows only (user_id)
    admin_activity_logs no access
    contact_messages    insert only

Administrator and system contexts are unrestricted, except that activity
records are append-only for everyone.
"""

import logging

from sqlalchemy import event, false, inspect as sa_inspect
from sqlalchemy.orm import with_loader_criteria

from academy.core.exceptions import StoragePolicyViolation
from academy.core.identity import (
    ROLE_ANONYMOUS,
    ROLE_MEMBER,
    UNRESTRICTED_ROLES,
)
from academy.models import db
from academy.models.account import Account
from academy.models.audit import AdminActivityLog
from academy.models.catalog import TrainingProgram
from academy.models.certificate import Certificate
from academy.models.contact import ContactMessage
from academy.models.enrollment import Enrollment, Payment
from academy.storage.context import current_access_context

logger = logging.getLogger(__name__)

OWNED_MODELS = (Enrollment, Payment, Certificate)
PROTECTED_MODELS = (Account, TrainingProgram, AdminActivityLog, ContactMessage) + OWNED_MODELS


def _deny(obj, operation: str, reason: str):
    raise StoragePolicyViolation(type(obj).__name__, operation, reason)


def _value_changed(obj, attr: str) -> bool:
    history = sa_inspect(obj).attrs[attr].history
    if not history.added:
        return False
    if not history.deleted:
        # Previous value never loaded: cannot prove it is unchanged
        return True
    return history.added[0] != history.deleted[0]


def _is_member(ctx) -> bool:
    return ctx is not None and ctx.role == ROLE_MEMBER and ctx.user_id is not None


def _is_anonymous(ctx) -> bool:
    return ctx is not None and ctx.role == ROLE_ANONYMOUS


# ═══════════════════════════════════════════════════════════════
# Read policies
# ═══════════════════════════════════════════════════════════════

def _read_options(ctx) -> list:
    """Loader criteria restricting every protected model for ``ctx``."""
    options = []

    if _is_member(ctx):
        user_id = ctx.user_id
        options.append(with_loader_criteria(
            Account, lambda cls: cls.id == user_id, include_aliases=True,
        ))
        for model in OWNED_MODELS:
            options.append(with_loader_criteria(
                model, lambda cls: cls.user_id == user_id, include_aliases=True,
            ))
    else:
        options.append(with_loader_criteria(Account, false(), include_aliases=True))
        for model in OWNED_MODELS:
            options.append(with_loader_criteria(model, false(), include_aliases=True))

    if _is_member(ctx) or _is_anonymous(ctx):
        options.append(with_loader_criteria(
            TrainingProgram, lambda cls: cls.is_active.is_(True), include_aliases=True,
        ))
    else:
        options.append(with_loader_criteria(TrainingProgram, false(), include_aliases=True))

    options.append(with_loader_criteria(AdminActivityLog, false(), include_aliases=True))
    options.append(with_loader_criteria(ContactMessage, false(), include_aliases=True))
    return options


def _apply_read_policies(orm_execute_state):
    if orm_execute_state.is_column_load:
        return
    if not (
        orm_execute_state.is_select
        or orm_execute_state.is_update
        or orm_execute_state.is_delete
    ):
        return

    ctx = current_access_context(orm_execute_state.session)
    if ctx is not None and ctx.role in UNRESTRICTED_ROLES:
        return

    if orm_execute_state.is_update or orm_execute_state.is_delete:
        mapper = orm_execute_state.bind_mapper
        model = mapper.class_.__name__ if mapper is not None else "unknown"
        raise StoragePolicyViolation(
            model, "bulk_write", "bulk writes require an administrator context",
        )

    orm_execute_state.statement = orm_execute_state.statement.options(*_read_options(ctx))


# ═══════════════════════════════════════════════════════════════
# Write policies
# ═══════════════════════════════════════════════════════════════

def _check_account_write(ctx, obj, operation):
    if operation == "insert":
        role = obj.role or ROLE_MEMBER
        if _is_anonymous(ctx) and role == ROLE_MEMBER and not obj.is_admin:
            return
        _deny(obj, operation, "account creation outside signup")
    if operation == "update" and _is_member(ctx) and obj.id == ctx.user_id:
        if _value_changed(obj, "id"):
            _deny(obj, operation, "account id is immutable")
        if _value_changed(obj, "role") or _value_changed(obj, "is_admin"):
            _deny(obj, operation, "role and is_admin cannot be changed by the account holder")
        return
    _deny(obj, operation, "account row not owned by the bound identity")


def _check_owned_write(ctx, obj, operation):
    if not _is_member(ctx):
        _deny(obj, operation, "no member identity bound")
    if obj.user_id != ctx.user_id:
        _deny(obj, operation, "row not owned by the bound identity")
    if operation == "update" and _value_changed(obj, "user_id"):
        _deny(obj, operation, "ownership cannot be transferred")


def _check_contact_write(ctx, obj, operation):
    if operation != "insert" or ctx is None:
        _deny(obj, operation, "contact messages are insert-only outside administration")
    if obj.user_id is not None and obj.user_id != ctx.user_id:
        _deny(obj, operation, "contact message attributed to another account")


def _check_write(ctx, obj, operation: str) -> None:
    if isinstance(obj, AdminActivityLog) and operation != "insert":
        _deny(obj, operation, "activity records are append-only")

    if ctx is None:
        _deny(obj, operation, "no access context bound")
    if ctx.role in UNRESTRICTED_ROLES:
        return

    if isinstance(obj, Account):
        _check_account_write(ctx, obj, operation)
    elif isinstance(obj, OWNED_MODELS):
        _check_owned_write(ctx, obj, operation)
    elif isinstance(obj, ContactMessage):
        _check_contact_write(ctx, obj, operation)
    else:
        # Catalog, activity records and anything unlisted
        _deny(obj, operation, f"{ctx.role} context cannot write this table")


def _check_pending_writes(session, flush_context, instances):
    if not (session.new or session.dirty or session.deleted):
        return
    ctx = current_access_context(session)
    for obj in session.new:
        _check_write(ctx, obj, "insert")
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            _check_write(ctx, obj, "update")
    for obj in session.deleted:
        _check_write(ctx, obj, "delete")


def install_storage_policies() -> None:
    """Attach the row policies to the application session (idempotent)."""
    target = db.session
    if not event.contains(target, "do_orm_execute", _apply_read_policies):
        event.listen(target, "do_orm_execute", _apply_read_policies)
    if not event.contains(target, "before_flush", _check_pending_writes):
        event.listen(target, "before_flush", _check_pending_writes)
    logger.debug("Storage row policies installed on %s", target)
