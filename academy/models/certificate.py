"""
Academy Enrollment API
Certificate domain model.

Models:
    - Certificate: completion certificate issued by an administrator.
"""

import uuid

from academy.models import db, isoformat, utcnow
from academy.models.base import OwnedModel, new_id


def generate_certificate_id() -> str:
    """Human-readable, collision-resistant certificate identifier."""
    return f"CERT-{uuid.uuid4().hex.upper()}"


class Certificate(OwnedModel):
    __tablename__ = "certificates"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    training_program_id = db.Column(
        db.String(36),
        db.ForeignKey("training_programs.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    certificate_id = db.Column(
        db.String(50), nullable=False, unique=True, default=generate_certificate_id,
    )
    issue_date = db.Column(db.Date, nullable=False)
    file_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    account = db.relationship("Account", back_populates="certificates")
    training_program = db.relationship("TrainingProgram")

    def to_dict(self):
        program = self.training_program
        return {
            "id": self.id,
            "user_id": self.user_id,
            "training_id": self.training_program_id,
            "training_title": program.title if program else None,
            "certificate_id": self.certificate_id,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "file_url": self.file_url,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Certificate {self.certificate_id}>"
