"""
JWT Service — Session token issuance and verification.

Access token:  24 hours (configurable via JWT_EXPIRES_SECONDS)
Algorithm:     HS256
Issuer:        JWT_ISSUER
Audience:      JWT_AUDIENCE

Token payload:
{
    "sub": <account_id>,
    "role": "member" | "administrator",
    "email": <email>,
    "is_admin": <bool>,
    "iat": <issued_at>,
    "exp": <expires_at>,
    "iss": <issuer>,
    "aud": <audience>,
    "jti": <unique_id>
}

Verification never fills in defaults: a token missing any identity claim, or
carrying a role outside the account roles, is rejected.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from academy.core.exceptions import TokenExpired, TokenInvalid
from academy.core.identity import ACCOUNT_ROLES, Identity

logger = logging.getLogger(__name__)

# ─── Defaults ────────────────────────────────────────────────
DEFAULT_EXPIRES = 86400   # 24 hours
ALGORITHM = "HS256"

REQUIRED_CLAIMS = ("sub", "role", "email", "is_admin", "iat", "exp", "iss", "aud")


def _get_secret():
    """Get the JWT secret key from app config."""
    secret = current_app.config.get("JWT_SECRET_KEY")
    if not secret:
        raise RuntimeError("JWT_SECRET_KEY is not configured")
    return secret


def _get_expires():
    return current_app.config.get("JWT_EXPIRES_SECONDS", DEFAULT_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def issue_token(user_id: str, role: str, email: str, is_admin: bool) -> str:
    """Issue a signed session token for an account identity."""
    missing = [
        name for name, value in (("user_id", user_id), ("role", role), ("email", email))
        if not value
    ]
    if missing or is_admin is None:
        raise ValueError(f"Cannot issue token, missing: {', '.join(missing) or 'is_admin'}")
    if role not in ACCOUNT_ROLES:
        raise ValueError(f"Cannot issue token for role {role!r}")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "is_admin": bool(is_admin),
        "iat": now,
        "exp": now + timedelta(seconds=_get_expires()),
        "iss": current_app.config["JWT_ISSUER"],
        "aud": current_app.config["JWT_AUDIENCE"],
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def issue_token_for(account) -> dict:
    """Token plus client metadata for an Account row."""
    return {
        "token": issue_token(account.id, account.role, account.email, account.is_admin),
        "token_type": "Bearer",
        "expires_in": _get_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str) -> dict:
    """
    Decode and verify a session token.

    Returns the payload dict on success.
    Raises TokenExpired or TokenInvalid (with a ``reason``) on failure.
    """
    if not token or token.count(".") != 2:
        raise TokenInvalid("malformed")

    try:
        payload = jwt.decode(
            token,
            _get_secret(),
            algorithms=[ALGORITHM],
            audience=current_app.config["JWT_AUDIENCE"],
            issuer=current_app.config["JWT_ISSUER"],
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.MissingRequiredClaimError as e:
        raise TokenInvalid("missing_claims", log_detail=str(e))
    except jwt.InvalidSignatureError:
        raise TokenInvalid("bad_signature")
    except (jwt.InvalidAudienceError, jwt.InvalidIssuerError) as e:
        raise TokenInvalid("bad_claims", log_detail=str(e))
    except jwt.InvalidTokenError as e:
        raise TokenInvalid("malformed", log_detail=str(e))

    if not payload.get("sub") or not payload.get("email"):
        raise TokenInvalid("missing_claims")
    if payload.get("role") not in ACCOUNT_ROLES:
        raise TokenInvalid("invalid_role", log_detail=f"role={payload.get('role')!r}")
    if not isinstance(payload.get("is_admin"), bool):
        raise TokenInvalid("missing_claims", log_detail="is_admin is not a boolean")

    return payload


def verify_token(token: str) -> Identity:
    """Verify a session token and return the identity it carries."""
    payload = decode_token(token)
    return Identity(
        id=payload["sub"],
        role=payload["role"],
        email=payload["email"],
        elevated=payload["is_admin"],
    )
