"""
Academy Enrollment API
Catalog domain model.

Models:
    - TrainingProgram: an offering members can enroll in while it is active.
"""

from academy.models import db, isoformat, utcnow
from academy.models.base import new_id


class TrainingProgram(db.Model):
    __tablename__ = "training_programs"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    duration = db.Column(db.String(100), comment="Free text, e.g. '6 weeks'")
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Deletion is blocked in the service while enrollments exist; RESTRICT
    # keeps the database honest if that check is ever skipped.
    enrollments = db.relationship(
        "Enrollment", back_populates="training_program", lazy="dynamic",
        passive_deletes="all",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "price": float(self.price) if self.price is not None else 0.0,
            "is_active": self.is_active,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<TrainingProgram {self.id}: {self.title}>"
