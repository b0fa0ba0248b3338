"""
Academy Enrollment API
Account domain model.

Models:
    - Account: member or administrator login identity.

``role`` and ``is_admin`` move together: ``is_admin`` is True exactly when
``role`` is ``administrator``. Only administrators (or the system principal)
may write either column; the storage policies reject anything else.
"""

from academy.core.identity import ACCOUNT_ROLES, ROLE_MEMBER
from academy.models import db, isoformat, utcnow
from academy.models.base import new_id

PROFESSIONS = {"student", "professional"}

# Fields an account holder may change on their own profile
SELF_SERVICE_FIELDS = ("full_name", "phone", "profession", "college", "company")


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(30))
    profession = db.Column(db.String(20), comment="student | professional")
    college = db.Column(db.String(200))
    company = db.Column(db.String(200))
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_MEMBER)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('member', 'administrator')", name="ck_accounts_role",
        ),
    )

    # Relationships
    enrollments = db.relationship(
        "Enrollment", back_populates="account", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    payments = db.relationship(
        "Payment", back_populates="account", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    certificates = db.relationship(
        "Certificate", back_populates="account", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "profession": self.profession,
            "college": self.college,
            "company": self.company,
            "role": self.role,
            "is_admin": self.is_admin,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Account {self.id}: {self.email} ({self.role})>"


def validate_role(role) -> bool:
    """Return True if ``role`` is an account role."""
    return role in ACCOUNT_ROLES
