"""
Academy Enrollment API
Administrator activity domain model.

Models:
    - AdminActivityLog: immutable, append-only trail of state-changing
      administrator operations.
"""

import json

from academy.models import db, isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_RESOURCE_TYPES = {
    "user", "training_program", "enrollment",
    "payment", "certificate", "contact_message",
}

AUDIT_ACTIONS = {
    "user.update_role",
    "training_program.create",
    "training_program.update",
    "training_program.delete",
    "enrollment.update_status",
    "payment.update_status",
    "certificate.create",
    "contact_message.update_status",
}


class AdminActivityLog(db.Model):
    """
    One row per administrator action. ``details_json`` carries the request
    payload snapshot. Rows are never updated or deleted by the application.
    """

    __tablename__ = "admin_activity_logs"
    __table_args__ = (
        db.Index("idx_admin_activity_resource", "resource_type", "resource_id"),
        db.Index("idx_admin_activity_action", "action"),
        db.Index("idx_admin_activity_ts", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action = db.Column(
        db.String(60), nullable=False,
        comment="payment.update_status | training_program.delete | …",
    )
    resource_type = db.Column(db.String(30), nullable=False)
    resource_id = db.Column(db.String(36), nullable=True)
    details_json = db.Column(db.Text, default="{}")
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    admin = db.relationship("Account")

    @property
    def details(self) -> dict:
        """Deserialise *details_json* to a Python dict."""
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        admin = self.admin
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "admin_name": admin.full_name if admin else None,
            "admin_email": admin.email if admin else None,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<AdminActivityLog {self.id}: {self.action} on {self.resource_type}/{self.resource_id}>"
