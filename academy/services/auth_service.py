"""
Auth Service — signup, administrator signup, login, password change.

Signup always creates a plain member: ``role`` / ``is_admin`` in the request
body are ignored. Administrator accounts are created only through
``admin_signup`` with the out-of-band ADMIN_SIGNUP_SECRET.
"""

import hmac
import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from academy.core.exceptions import (
    AuthenticationRequired,
    InternalError,
    InsufficientPermissions,
    ResourceConflict,
    ResourceNotFound,
    ValidationFailed,
)
from academy.core.identity import ANONYMOUS, ROLE_ADMINISTRATOR, ROLE_MEMBER, Identity
from academy.models.account import PROFESSIONS, Account
from academy.services.jwt_service import issue_token_for
from academy.services.security_observability import record_security_event
from academy.storage.context import access_context, system_context
from academy.utils.crypto import DUMMY_PASSWORD_HASH, hash_password, verify_password
from academy.utils.helpers import clean_text, one_of

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt only reads the first 72 bytes and bcrypt>=5 refuses longer input
MAX_PASSWORD_BYTES = 72


# ═══════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════
def normalize_email(email) -> str:
    try:
        valid = validate_email(str(email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationFailed(f"Invalid email: {e}")
    return valid.normalized.lower()


def validate_password(password) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return password


def validate_profession(profession):
    if profession in (None, ""):
        return None
    return one_of(profession, PROFESSIONS, 'Profession must be either "student" or "professional"')


def _profile_fields(data: dict) -> dict:
    return {
        "full_name": clean_text(data.get("full_name"), "Full name", required=True, max_length=200),
        "phone": clean_text(data.get("phone"), "Phone", max_length=30),
        "profession": validate_profession(data.get("profession")),
        "college": clean_text(data.get("college"), "College", max_length=200),
        "company": clean_text(data.get("company"), "Company", max_length=200),
    }


def _email_taken(email: str) -> bool:
    with system_context():
        return Account.query.filter_by(email=email).first() is not None


def _auth_response(account: Account) -> dict:
    return {"user": account.to_dict(), **issue_token_for(account)}


# ═══════════════════════════════════════════════════════════════
# Signup / login
# ═══════════════════════════════════════════════════════════════
def signup(data: dict) -> dict:
    """Create a member account. Role is never taken from the request."""
    email = normalize_email(data.get("email"))
    password = validate_password(data.get("password"))
    fields = _profile_fields(data)

    if "role" in data or "is_admin" in data:
        logger.info("Ignoring role fields supplied at signup for %s", email)

    if _email_taken(email):
        raise ResourceConflict("Email already exists")

    with access_context(ANONYMOUS) as session:
        account = Account(
            email=email,
            password_hash=hash_password(password),
            role=ROLE_MEMBER,
            is_admin=False,
            **fields,
        )
        session.add(account)
        session.flush()
        result = _auth_response(account)

    logger.info("Member signed up: %s", account.id)
    return result


def admin_signup(data: dict) -> dict:
    """Create an administrator account when the signup secret matches."""
    configured = current_app.config.get("ADMIN_SIGNUP_SECRET")
    if not configured:
        logger.error("Administrator signup attempted but ADMIN_SIGNUP_SECRET is not configured")
        raise InternalError("Administrator signup is not configured")

    supplied = data.get("admin_secret")
    if not supplied:
        raise ValidationFailed("Admin secret is required")
    if not hmac.compare_digest(str(supplied).encode("utf-8"), configured.encode("utf-8")):
        record_security_event(
            event_type="admin_signup_rejected",
            reason="invalid admin signup secret",
            severity="high",
        )
        raise AuthenticationRequired("Invalid admin secret")

    email = normalize_email(data.get("email"))
    password = validate_password(data.get("password"))
    fields = _profile_fields(data)

    if _email_taken(email):
        raise ResourceConflict("Email already exists")

    with system_context() as session:
        account = Account(
            email=email,
            password_hash=hash_password(password),
            role=ROLE_ADMINISTRATOR,
            is_admin=True,
            **fields,
        )
        session.add(account)
        session.flush()
        result = _auth_response(account)

    record_security_event(
        event_type="admin_signup",
        reason="administrator account created",
        severity="info",
        user_id=account.id,
        role=ROLE_ADMINISTRATOR,
    )
    return result


def login(email, password) -> dict:
    """Verify credentials and issue a session token."""
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationFailed("Email and password are required")
    email = email.strip().lower()

    with system_context():
        account = Account.query.filter_by(email=email).first()

    # Same bcrypt cost whether or not the email is registered
    stored_hash = account.password_hash if account is not None else DUMMY_PASSWORD_HASH
    if not verify_password(password, stored_hash) or account is None:
        record_security_event(
            event_type="login_failed",
            reason="invalid credentials",
            details={"email": email},
        )
        raise AuthenticationRequired("Invalid email or password")

    logger.info("Account %s logged in", account.id)
    return _auth_response(account)


def refresh_identity_token(identity: Identity) -> dict:
    """Re-issue a token from the current account row (role changes apply)."""
    with access_context(identity):
        account = Account.query.filter_by(id=identity.id).first()
        if account is None:
            raise AuthenticationRequired("Account no longer exists")
        return _auth_response(account)


def change_password(identity: Identity, current_password, new_password) -> None:
    if not isinstance(current_password, str) or not current_password or not new_password:
        raise ValidationFailed("Current password and new password are required")
    validate_password(new_password)

    with access_context(identity):
        account = Account.query.filter_by(id=identity.id).first()
        if account is None:
            raise ResourceNotFound("Account", resource_id=identity.id)
        if not verify_password(current_password, account.password_hash):
            raise InsufficientPermissions("Current password is incorrect")
        if verify_password(new_password, account.password_hash):
            raise ValidationFailed("New password must be different from the current password")
        account.password_hash = hash_password(new_password)

    logger.info("Password changed for account %s", identity.id)
