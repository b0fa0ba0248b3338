"""
Crypto utilities — bcrypt password hashing.

Hashes are bcrypt ($2b$) with 12 rounds. Verification also accepts $2a$
hashes produced by other bcrypt implementations, so accounts imported from
an existing user table keep working.
"""

import bcrypt

BCRYPT_ROUNDS = 12


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


# Checked when no account matches the email
DUMMY_PASSWORD_HASH = hash_password("academy-no-such-account")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not plain_password:
        return False
    if not password_hash.startswith(("$2b$", "$2a$", "$2y$")):
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Corrupt hash in storage, or input over bcrypt's 72-byte limit
        return False
