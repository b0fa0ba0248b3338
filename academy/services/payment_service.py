"""
Payment Service — UPI payment sessions and the payment/enrollment state machine.

Lifecycle:

    initiate       member, own ``awaiting_payment`` enrollment. Reuses the
                   live ``awaiting_verification`` payment for the pair (same
                   id, reference, link and QR); otherwise rejects the expired
                   one and opens a new session with a fresh reference.
    confirm        member records an optional transaction reference while the
                   session is live. Status stays ``awaiting_verification``.
    status         member read; expires the session lazily.
    set_status     administrator decision, applied together with its
                   enrollment effect in one transaction:
                       confirmed  awaiting_payment -> enrolled
                       rejected   enrolled -> awaiting_payment
                       refunded   no enrollment effect

A session expires once ``now - created_at >= PAYMENT_WINDOW``. Expiry is
applied lazily on the next touch; ``reconcile_expired_payments`` applies the
same rule in bulk for callers that want eager consistency.
"""

import logging

from academy.core.exceptions import (
    InvalidState,
    ResourceNotFound,
    SessionExpired,
)
from academy.core.identity import Identity
from academy.models import isoformat, utcnow
from academy.models.enrollment import (
    ENROLLMENT_AWAITING_PAYMENT,
    ENROLLMENT_ENROLLED,
    PAYMENT_AWAITING_VERIFICATION,
    PAYMENT_CONFIRMED,
    PAYMENT_DECISIONS,
    PAYMENT_METHOD_UPI,
    PAYMENT_REJECTED,
    PAYMENT_STATUSES,
    PAYMENT_WINDOW,
    Enrollment,
    Payment,
    validate_payment_transition,
)
from academy.services.upi_link import (
    build_qr_data_uri,
    build_upi_link,
    generate_payment_reference,
)
from academy.storage.context import access_context, system_context
from academy.utils.helpers import one_of

logger = logging.getLogger(__name__)


def _utcnow():
    """Clock used for every window decision in this module."""
    return utcnow()


def _get_payment(payment_id) -> Payment:
    payment = Payment.query.filter_by(id=payment_id).first()
    if payment is None:
        raise ResourceNotFound("Payment", resource_id=payment_id)
    return payment


def _session_payload(payment: Payment, enrollment: Enrollment, title: str, now) -> dict:
    note = f"Payment for {title}"
    link = build_upi_link(payment.amount, note, payment.payment_reference)
    return {
        "payment_id": payment.id,
        "enrollment_id": enrollment.id,
        "training_title": title,
        "amount": float(payment.amount),
        "payment_method": payment.payment_method,
        "upi_link": link,
        "qr_code": build_qr_data_uri(link),
        "payment_reference": payment.payment_reference,
        "expires_at": isoformat(payment.expires_at),
        "timer_duration": payment.seconds_remaining(now),
    }


# ═══════════════════════════════════════════════════════════════
# Member operations
# ═══════════════════════════════════════════════════════════════
def initiate_payment(identity: Identity, enrollment_id) -> dict:
    """Open (or resume) the payment session for an enrollment."""
    now = _utcnow()
    with access_context(identity) as session:
        enrollment = Enrollment.query.filter_by(id=enrollment_id).first()
        if enrollment is None:
            raise ResourceNotFound("Enrollment", resource_id=enrollment_id)
        if enrollment.status != ENROLLMENT_AWAITING_PAYMENT:
            raise InvalidState(
                "Enrollment is not awaiting payment",
                details={"current_status": enrollment.status},
            )
        program = enrollment.training_program
        if program is None:
            raise ResourceNotFound("Training program", resource_id=enrollment.training_program_id)

        pending = (
            Payment.query
            .filter_by(
                user_id=enrollment.user_id,
                training_program_id=enrollment.training_program_id,
                status=PAYMENT_AWAITING_VERIFICATION,
            )
            .order_by(Payment.created_at.desc())
            .all()
        )
        live = None
        for payment in pending:
            if live is None and not payment.is_window_elapsed(now):
                live = payment
            elif payment.is_window_elapsed(now):
                payment.status = PAYMENT_REJECTED
                logger.info("Payment %s expired before verification", payment.id)

        resumed = live is not None
        if live is None:
            live = Payment(
                user_id=enrollment.user_id,
                training_program_id=enrollment.training_program_id,
                amount=program.price or 0,
                payment_method=PAYMENT_METHOD_UPI,
                payment_reference=generate_payment_reference(),
                status=PAYMENT_AWAITING_VERIFICATION,
                created_at=now,
            )
            session.add(live)
        session.flush()
        result = _session_payload(live, enrollment, program.title, now)

    logger.info(
        "Payment session %s %s for enrollment %s",
        result["payment_id"], "resumed" if resumed else "opened", enrollment_id,
    )
    return result


def confirm_payment(identity: Identity, payment_id, transaction_reference=None) -> dict:
    """
    Member-side confirmation. Records the transaction reference while the
    session is live; an elapsed session is rejected and SessionExpired raised.
    """
    now = _utcnow()
    expired = False
    with access_context(identity):
        payment = _get_payment(payment_id)
        if payment.status != PAYMENT_AWAITING_VERIFICATION:
            raise InvalidState(
                "Payment is not awaiting verification",
                details={"current_status": payment.status},
            )
        if payment.is_window_elapsed(now):
            payment.status = PAYMENT_REJECTED
            expired = True
        else:
            if transaction_reference:
                payment.transaction_reference = str(transaction_reference).strip()[:100]
            result = payment.to_dict()

    if expired:
        # Rejection above is committed before the caller hears about it
        logger.info("Payment %s confirmed after its window; rejected", payment_id)
        raise SessionExpired()

    logger.info("Payment %s confirmed by member %s", payment_id, identity.id)
    return result


def get_payment_status(identity: Identity, payment_id) -> dict:
    """Status read with lazy expiry. ``is_expired`` reports an expiry applied now."""
    now = _utcnow()
    with access_context(identity):
        payment = _get_payment(payment_id)
        is_expired = (
            payment.status == PAYMENT_AWAITING_VERIFICATION
            and payment.is_window_elapsed(now)
        )
        if is_expired:
            payment.status = PAYMENT_REJECTED
        result = payment.to_dict()
        result["is_expired"] = is_expired
        result["expires_at"] = isoformat(payment.expires_at)
        result["seconds_remaining"] = (
            payment.seconds_remaining(now)
            if payment.status == PAYMENT_AWAITING_VERIFICATION else 0
        )
        return result


def list_my_payments(identity: Identity) -> list[dict]:
    with access_context(identity):
        payments = (
            Payment.owned_by(identity.id)
            .order_by(Payment.created_at.desc())
            .all()
        )
        return [p.to_dict() for p in payments]


# ═══════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════
def list_payments(identity: Identity, *, status=None, user_id=None, limit=200) -> list[dict]:
    with access_context(identity):
        q = Payment.query
        if status:
            q = q.filter_by(status=one_of(status, PAYMENT_STATUSES, "Invalid payment status"))
        if user_id:
            q = q.filter_by(user_id=user_id)
        result = []
        for payment in q.order_by(Payment.created_at.desc()).limit(limit).all():
            d = payment.to_dict()
            account = payment.account
            d["full_name"] = account.full_name if account else None
            d["email"] = account.email if account else None
            result.append(d)
        return result


def set_payment_status(identity: Identity, payment_id, status) -> dict:
    """Administrator decision on a payment, cascaded to its enrollment."""
    one_of(status, PAYMENT_DECISIONS, "Invalid payment status")

    with access_context(identity):
        payment = _get_payment(payment_id)
        previous = payment.status
        if not validate_payment_transition(previous, status):
            raise InvalidState(
                f"Cannot change payment status from '{previous}' to '{status}'",
                details={"current_status": previous, "requested_status": status},
            )
        payment.status = status

        enrollment = Enrollment.query.filter_by(
            user_id=payment.user_id,
            training_program_id=payment.training_program_id,
        ).first()
        enrollment_updated = False
        if enrollment is not None:
            if status == PAYMENT_CONFIRMED and enrollment.status == ENROLLMENT_AWAITING_PAYMENT:
                enrollment.status = ENROLLMENT_ENROLLED
                enrollment_updated = True
            elif status == PAYMENT_REJECTED and enrollment.status == ENROLLMENT_ENROLLED:
                enrollment.status = ENROLLMENT_AWAITING_PAYMENT
                enrollment_updated = True

        result = payment.to_dict()
        result["enrollment_status"] = enrollment.status if enrollment else None
        result["enrollment_updated"] = enrollment_updated

    logger.info(
        "Payment %s %s -> %s by %s (enrollment updated: %s)",
        payment_id, previous, status, identity.id, enrollment_updated,
    )
    return result


def reconcile_expired_payments(now=None) -> int:
    """
    Reject every ``awaiting_verification`` payment whose window has elapsed.

    Not scheduled anywhere; lazy expiry keeps reads correct without it.
    Returns the number of payments rejected.
    """
    now = now or _utcnow()
    with system_context():
        pending = Payment.query.filter_by(status=PAYMENT_AWAITING_VERIFICATION).all()
        expired = [p for p in pending if p.is_window_elapsed(now)]
        for payment in expired:
            payment.status = PAYMENT_REJECTED

    if expired:
        logger.info(
            "Rejected %d payment session(s) older than %ds",
            len(expired), int(PAYMENT_WINDOW.total_seconds()),
        )
    return len(expired)
