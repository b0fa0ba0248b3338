"""
Identity context shared by the gates, the services and the storage layer.

Account roles come from signed tokens. Service principals (``anonymous``,
``system``) are never issued in tokens; code binds them explicitly for work
done without a member or administrator identity.
"""

from dataclasses import dataclass

ROLE_MEMBER = "member"
ROLE_ADMINISTRATOR = "administrator"
ACCOUNT_ROLES = (ROLE_MEMBER, ROLE_ADMINISTRATOR)

ROLE_ANONYMOUS = "anonymous"
ROLE_SYSTEM = "system"

# Roles the storage layer lets through without row filtering
UNRESTRICTED_ROLES = frozenset({ROLE_ADMINISTRATOR, ROLE_SYSTEM})


@dataclass(frozen=True)
class Identity:
    id: str | None
    role: str
    email: str | None = None
    elevated: bool = False

    @property
    def is_administrator(self) -> bool:
        return self.role == ROLE_ADMINISTRATOR

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "email": self.email,
            "is_admin": self.elevated,
        }


ANONYMOUS = Identity(id=None, role=ROLE_ANONYMOUS)
SYSTEM = Identity(id=None, role=ROLE_SYSTEM)
