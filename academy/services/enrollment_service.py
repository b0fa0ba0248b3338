"""
Enrollment Service — member enrollments and administrator status changes.

An enrollment starts in ``awaiting_payment``. It becomes ``enrolled`` only
as a side effect of a payment being confirmed (see ``payment_service``), and
``completed`` only by an administrator.
"""

import logging

from academy.core.exceptions import (
    InvalidState,
    ResourceConflict,
    ResourceNotFound,
)
from academy.core.identity import Identity
from academy.models.account import Account
from academy.models.catalog import TrainingProgram
from academy.models.enrollment import (
    ENROLLMENT_AWAITING_PAYMENT,
    ENROLLMENT_STATUSES,
    Enrollment,
    Payment,
    validate_enrollment_transition,
)
from academy.storage.context import access_context
from academy.utils.helpers import clean_text, one_of

logger = logging.getLogger(__name__)


def _get_enrollment(enrollment_id) -> Enrollment:
    enrollment = Enrollment.query.filter_by(id=enrollment_id).first()
    if enrollment is None:
        raise ResourceNotFound("Enrollment", resource_id=enrollment_id)
    return enrollment


def _active_program(training_id) -> TrainingProgram:
    training_id = clean_text(training_id, "training_id", required=True)
    program = TrainingProgram.query.filter_by(id=training_id, is_active=True).first()
    if program is None:
        raise ResourceNotFound("Training program", resource_id=training_id)
    return program


def _latest_payment(enrollment: Enrollment):
    return (
        Payment.query
        .filter_by(user_id=enrollment.user_id, training_program_id=enrollment.training_program_id)
        .order_by(Payment.created_at.desc())
        .first()
    )


# ═══════════════════════════════════════════════════════════════
# Member operations
# ═══════════════════════════════════════════════════════════════
def create_enrollment(identity: Identity, training_id) -> dict:
    """Enroll the caller in an active program. One enrollment per pair."""
    with access_context(identity) as session:
        program = _active_program(training_id)
        existing = Enrollment.query.filter_by(
            user_id=identity.id, training_program_id=program.id,
        ).first()
        if existing is not None:
            raise ResourceConflict("Already enrolled in this training program")

        enrollment = Enrollment(user_id=identity.id, training_program_id=program.id)
        session.add(enrollment)
        # The unique constraint settles concurrent requests for the same pair
        session.flush()
        result = enrollment.to_dict()

    logger.info("Account %s enrolled in %s", identity.id, program.id)
    return result


def enroll_with_details(identity: Identity, training_id, details: dict) -> dict:
    """
    Enroll with contact details captured on the enrollment form.

    The caller's name and phone are updated from ``details``. Retrying while
    the existing enrollment is still ``awaiting_payment`` returns that
    enrollment instead of failing; any later state is a conflict.
    """
    full_name = clean_text(details.get("full_name"), "Full name", required=True, max_length=200)
    phone = clean_text(details.get("phone"), "Phone", max_length=30)

    with access_context(identity) as session:
        program = _active_program(training_id)
        account = Account.query.filter_by(id=identity.id).first()
        if account is None:
            raise ResourceNotFound("User", resource_id=identity.id)

        enrollment = Enrollment.query.filter_by(
            user_id=identity.id, training_program_id=program.id,
        ).first()
        if enrollment is not None and enrollment.status != ENROLLMENT_AWAITING_PAYMENT:
            raise ResourceConflict("Already enrolled in this training program")

        account.full_name = full_name
        account.phone = phone

        retry = enrollment is not None
        if not retry:
            enrollment = Enrollment(user_id=identity.id, training_program_id=program.id)
            session.add(enrollment)
        session.flush()
        result = enrollment.to_dict()
        result["retry"] = retry

    logger.info(
        "Account %s %s enrollment %s", identity.id,
        "retried" if retry else "created", result["id"],
    )
    return result


def list_my_enrollments(identity: Identity) -> list[dict]:
    """Caller's enrollments, newest first, each with its latest payment."""
    with access_context(identity):
        enrollments = (
            Enrollment.owned_by(identity.id)
            .order_by(Enrollment.created_at.desc())
            .all()
        )
        result = []
        for enrollment in enrollments:
            d = enrollment.to_dict()
            payment = _latest_payment(enrollment)
            d["payment"] = payment.to_dict() if payment else None
            result.append(d)
        return result


def get_enrollment(identity: Identity, enrollment_id) -> dict:
    with access_context(identity):
        enrollment = _get_enrollment(enrollment_id)
        d = enrollment.to_dict()
        payment = _latest_payment(enrollment)
        d["payment"] = payment.to_dict() if payment else None
        return d


# ═══════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════
def list_enrollments(identity: Identity, *, status=None, user_id=None, limit=200) -> list[dict]:
    with access_context(identity):
        q = Enrollment.query
        if status:
            q = q.filter_by(status=one_of(status, ENROLLMENT_STATUSES, "Invalid enrollment status"))
        if user_id:
            q = q.filter_by(user_id=user_id)
        result = []
        for enrollment in q.order_by(Enrollment.created_at.desc()).limit(limit).all():
            d = enrollment.to_dict()
            account = enrollment.account
            d["full_name"] = account.full_name if account else None
            d["email"] = account.email if account else None
            result.append(d)
        return result


def update_enrollment_status(identity: Identity, enrollment_id, status) -> dict:
    """Administrator transition. Only ``enrolled -> completed`` is allowed."""
    one_of(status, ENROLLMENT_STATUSES, "Invalid enrollment status")

    with access_context(identity):
        enrollment = _get_enrollment(enrollment_id)
        previous = enrollment.status
        if not validate_enrollment_transition(previous, status):
            raise InvalidState(
                f"Cannot change enrollment status from '{previous}' to '{status}'",
                details={"current_status": previous, "requested_status": status},
            )
        enrollment.status = status
        result = enrollment.to_dict()

    logger.info("Enrollment %s %s -> %s by %s", enrollment_id, previous, status, identity.id)
    return result
