"""
Account Service — self-service profile and administrator account management.

Profile updates go through ``SELF_SERVICE_FIELDS``: ``role``, ``is_admin``,
``email`` and ``id`` in a profile payload are dropped before anything touches
the row. The storage policies reject the same change independently.
"""

import logging

from academy.core.exceptions import ResourceNotFound, ValidationFailed
from academy.core.identity import ROLE_ADMINISTRATOR, Identity
from academy.models.account import SELF_SERVICE_FIELDS, Account, validate_role
from academy.services.auth_service import validate_profession
from academy.storage.context import access_context
from academy.utils.helpers import clean_text

logger = logging.getLogger(__name__)

PROFILE_LABELS = {"full_name": "Full name", "phone": "Phone", "college": "College", "company": "Company"}
PROFILE_MAX_LENGTHS = {"full_name": 200, "phone": 30, "college": 200, "company": 200}


def _get_account(account_id) -> Account:
    account = Account.query.filter_by(id=account_id).first()
    if account is None:
        raise ResourceNotFound("User", resource_id=account_id)
    return account


# ═══════════════════════════════════════════════════════════════
# Self-service
# ═══════════════════════════════════════════════════════════════
def get_profile(identity: Identity) -> dict:
    with access_context(identity):
        return _get_account(identity.id).to_dict()


def update_profile(identity: Identity, data: dict) -> dict:
    """Apply whitelisted profile fields; everything else is ignored."""
    ignored = sorted(set(data) - set(SELF_SERVICE_FIELDS))
    if ignored:
        logger.info("Profile update for %s ignored fields: %s", identity.id, ignored)

    changes = {}
    for field in SELF_SERVICE_FIELDS:
        if field not in data:
            continue
        if field == "profession":
            changes[field] = validate_profession(data[field])
        else:
            changes[field] = clean_text(
                data[field], PROFILE_LABELS[field],
                required=field == "full_name", max_length=PROFILE_MAX_LENGTHS[field],
            )

    with access_context(identity):
        account = _get_account(identity.id)
        for field, value in changes.items():
            setattr(account, field, value)
        return account.to_dict()


# ═══════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════
def list_accounts(identity: Identity, *, role=None, search=None) -> list[dict]:
    with access_context(identity):
        q = Account.query
        if role:
            q = q.filter_by(role=role)
        if search:
            pattern = f"%{search.strip()}%"
            q = q.filter(Account.full_name.ilike(pattern) | Account.email.ilike(pattern))
        return [a.to_dict() for a in q.order_by(Account.created_at.desc()).all()]


def get_account(identity: Identity, account_id) -> dict:
    with access_context(identity):
        return _get_account(account_id).to_dict()


def update_role(identity: Identity, account_id, role) -> dict:
    """Set an account's role. ``is_admin`` always follows the role."""
    if not validate_role(role):
        raise ValidationFailed('Role must be either "member" or "administrator"')

    with access_context(identity):
        account = _get_account(account_id)
        previous = account.role
        account.role = role
        account.is_admin = role == ROLE_ADMINISTRATOR
        result = account.to_dict()

    logger.info("Account %s role %s -> %s by %s", account_id, previous, role, identity.id)
    return result
