"""
OwnedModel — Abstract base class for account-owned models.

Enrollments, payments and certificates belong to exactly one account. The
owning-identity column lives here so that the storage policies and the
ownership predicate can treat all owned models the same way:
  - user_id FK column with index, cascade delete on account removal
  - owned_by(user_id) classmethod
"""

import uuid

from academy.models import db


def new_id() -> str:
    return str(uuid.uuid4())


class OwnedModel(db.Model):
    """Abstract base for account-owned tables."""
    __abstract__ = True

    OWNER_FIELD = "user_id"

    user_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def owned_by(cls, user_id):
        """Return a query filtered by the owning account."""
        return cls.query.filter_by(user_id=user_id)
