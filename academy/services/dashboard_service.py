"""
Dashboard Service — member and administrator summaries, system statistics.
"""

import logging

from sqlalchemy import func

from academy.core.identity import ROLE_ADMINISTRATOR, Identity
from academy.models import db
from academy.models.account import Account
from academy.models.catalog import TrainingProgram
from academy.models.certificate import Certificate
from academy.models.contact import ContactMessage
from academy.models.enrollment import (
    ENROLLMENT_COMPLETED,
    PAYMENT_AWAITING_VERIFICATION,
    PAYMENT_CONFIRMED,
    Enrollment,
    Payment,
)
from academy.storage.context import access_context

logger = logging.getLogger(__name__)

RECENT_MEMBER = 5
RECENT_ADMIN = 10


def member_dashboard(identity: Identity) -> dict:
    with access_context(identity):
        enrollments = (
            Enrollment.owned_by(identity.id)
            .order_by(Enrollment.created_at.desc()).all()
        )
        payments = (
            Payment.owned_by(identity.id)
            .order_by(Payment.created_at.desc()).all()
        )
        certificates = (
            Certificate.owned_by(identity.id)
            .order_by(Certificate.created_at.desc()).all()
        )
        return {
            "stats": {
                "total_enrollments": len(enrollments),
                "completed_programs": sum(1 for e in enrollments if e.status == ENROLLMENT_COMPLETED),
                "pending_payments": sum(1 for p in payments if p.status == PAYMENT_AWAITING_VERIFICATION),
                "total_certificates": len(certificates),
            },
            "recent_enrollments": [e.to_dict() for e in enrollments[:RECENT_MEMBER]],
            "recent_payments": [p.to_dict() for p in payments[:RECENT_MEMBER]],
            "recent_certificates": [c.to_dict() for c in certificates[:RECENT_MEMBER]],
        }


def _counts_by(column) -> dict:
    rows = db.session.query(column, func.count()).group_by(column).all()
    return {key: count for key, count in rows}


def admin_dashboard(identity: Identity) -> dict:
    with access_context(identity):
        roles = _counts_by(Account.role)
        payments = _counts_by(Payment.status)
        return {
            "stats": {
                "total_users": sum(roles.values()),
                "total_admins": roles.get(ROLE_ADMINISTRATOR, 0),
                "total_programs": TrainingProgram.query.count(),
                "active_programs": TrainingProgram.query.filter_by(is_active=True).count(),
                "total_enrollments": Enrollment.query.count(),
                "pending_payments": payments.get(PAYMENT_AWAITING_VERIFICATION, 0),
                "total_certificates": Certificate.query.count(),
            },
            "recent_users": [
                a.to_dict() for a in
                Account.query.order_by(Account.created_at.desc()).limit(RECENT_ADMIN).all()
            ],
            "recent_enrollments": [
                e.to_dict() for e in
                Enrollment.query.order_by(Enrollment.created_at.desc()).limit(RECENT_ADMIN).all()
            ],
            "recent_payments": [
                p.to_dict() for p in
                Payment.query.order_by(Payment.created_at.desc()).limit(RECENT_ADMIN).all()
            ],
        }


def system_stats(identity: Identity) -> dict:
    """Row counts per table and status, plus confirmed revenue."""
    with access_context(identity):
        revenue = (
            db.session.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.status == PAYMENT_CONFIRMED)
            .scalar()
        )
        return {
            "accounts": _counts_by(Account.role),
            "training_programs": {
                "total": TrainingProgram.query.count(),
                "active": TrainingProgram.query.filter_by(is_active=True).count(),
            },
            "enrollments": _counts_by(Enrollment.status),
            "payments": _counts_by(Payment.status),
            "certificates": Certificate.query.count(),
            "contact_messages": _counts_by(ContactMessage.status),
            "confirmed_revenue": float(revenue or 0),
        }
