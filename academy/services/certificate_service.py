"""
Certificate Service — issuance by administrators, listing for owners.
"""

import logging
from datetime import date

from academy.core.exceptions import ResourceNotFound, ValidationFailed
from academy.core.identity import Identity
from academy.models.account import Account
from academy.models.catalog import TrainingProgram
from academy.models.certificate import Certificate
from academy.storage.context import access_context
from academy.utils.helpers import clean_text

logger = logging.getLogger(__name__)


def _parse_issue_date(value) -> date:
    if not value:
        raise ValidationFailed("issue_date is required")
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationFailed("issue_date must be an ISO date (YYYY-MM-DD)")


def create_certificate(identity: Identity, data: dict) -> dict:
    user_id = data.get("user_id")
    training_id = data.get("training_id")
    if not user_id or not training_id:
        raise ValidationFailed("user_id and training_id are required")
    issue_date = _parse_issue_date(data.get("issue_date"))
    file_url = clean_text(data.get("file_url"), "file_url", max_length=500)

    with access_context(identity) as session:
        if Account.query.filter_by(id=user_id).first() is None:
            raise ResourceNotFound("User", resource_id=user_id)
        if TrainingProgram.query.filter_by(id=training_id).first() is None:
            raise ResourceNotFound("Training program", resource_id=training_id)

        certificate = Certificate(
            user_id=user_id,
            training_program_id=training_id,
            issue_date=issue_date,
            file_url=file_url,
        )
        session.add(certificate)
        session.flush()
        result = certificate.to_dict()

    logger.info(
        "Certificate %s issued to %s by %s",
        result["certificate_id"], user_id, identity.id,
    )
    return result


def list_certificates(identity: Identity, *, user_id=None, training_id=None, limit=200) -> list[dict]:
    with access_context(identity):
        q = Certificate.query
        if user_id:
            q = q.filter_by(user_id=user_id)
        if training_id:
            q = q.filter_by(training_program_id=training_id)
        result = []
        for cert in q.order_by(Certificate.created_at.desc()).limit(limit).all():
            d = cert.to_dict()
            account = cert.account
            d["full_name"] = account.full_name if account else None
            d["email"] = account.email if account else None
            result.append(d)
        return result


def list_my_certificates(identity: Identity) -> list[dict]:
    with access_context(identity):
        certificates = (
            Certificate.owned_by(identity.id)
            .order_by(Certificate.issue_date.desc())
            .all()
        )
        return [c.to_dict() for c in certificates]
