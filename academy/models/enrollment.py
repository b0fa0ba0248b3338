"""
Academy Enrollment API
Enrollment & payment domain models.

Models:
    - Enrollment: one account enrolled in one training program.
    - Payment: a UPI payment session for an (account, training program) pair.

Lifecycles:
    Enrollment: awaiting_payment -> enrolled -> completed
    Payment:    awaiting_verification -> confirmed | rejected
                confirmed -> refunded | rejected
                rejected -> confirmed

A payment is logically tied to the enrollment of the same
(user_id, training_program_id) pair; there is no direct FK between them.
"""

from datetime import timedelta

from academy.models import as_utc, db, isoformat, utcnow
from academy.models.base import OwnedModel, new_id

# ── Enrollment ───────────────────────────────────────────────────────────────

ENROLLMENT_AWAITING_PAYMENT = "awaiting_payment"
ENROLLMENT_ENROLLED = "enrolled"
ENROLLMENT_COMPLETED = "completed"

ENROLLMENT_STATUSES = {
    ENROLLMENT_AWAITING_PAYMENT, ENROLLMENT_ENROLLED, ENROLLMENT_COMPLETED,
}

# Edges an administrator may apply directly. awaiting_payment <-> enrolled
# only ever happens as a side effect of a payment decision.
ENROLLMENT_TRANSITIONS = {
    ENROLLMENT_AWAITING_PAYMENT: [],
    ENROLLMENT_ENROLLED:         [ENROLLMENT_COMPLETED],
    ENROLLMENT_COMPLETED:        [],
}

# ── Payment ──────────────────────────────────────────────────────────────────

PAYMENT_AWAITING_VERIFICATION = "awaiting_verification"
PAYMENT_CONFIRMED = "confirmed"
PAYMENT_REJECTED = "rejected"
PAYMENT_REFUNDED = "refunded"

PAYMENT_STATUSES = {
    PAYMENT_AWAITING_VERIFICATION, PAYMENT_CONFIRMED,
    PAYMENT_REJECTED, PAYMENT_REFUNDED,
}

# Targets an administrator may set
PAYMENT_DECISIONS = {PAYMENT_CONFIRMED, PAYMENT_REJECTED, PAYMENT_REFUNDED}

PAYMENT_TRANSITIONS = {
    PAYMENT_AWAITING_VERIFICATION: [PAYMENT_CONFIRMED, PAYMENT_REJECTED],
    PAYMENT_CONFIRMED:             [PAYMENT_REFUNDED, PAYMENT_REJECTED],
    PAYMENT_REJECTED:              [PAYMENT_CONFIRMED],  # late verification of an expired session
    PAYMENT_REFUNDED:              [],
}

PAYMENT_METHOD_UPI = "UPI"

# Verification window, anchored at Payment.created_at
PAYMENT_WINDOW = timedelta(minutes=5)


def validate_enrollment_transition(old_status, new_status):
    """Return True if an administrator may move an Enrollment old -> new."""
    return new_status in ENROLLMENT_TRANSITIONS.get(old_status, [])


def validate_payment_transition(old_status, new_status):
    """Return True if Payment status transition is valid."""
    return new_status in PAYMENT_TRANSITIONS.get(old_status, [])


class Enrollment(OwnedModel):
    __tablename__ = "enrollments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    training_program_id = db.Column(
        db.String(36),
        db.ForeignKey("training_programs.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status = db.Column(
        db.String(30), nullable=False, default=ENROLLMENT_AWAITING_PAYMENT,
        comment="awaiting_payment | enrolled | completed",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "training_program_id", name="uq_enrollment_user_program"),
    )

    account = db.relationship("Account", back_populates="enrollments")
    training_program = db.relationship("TrainingProgram", back_populates="enrollments")

    def to_dict(self, include_program=True):
        d = {
            "id": self.id,
            "user_id": self.user_id,
            "training_id": self.training_program_id,
            "status": self.status,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_program:
            program = self.training_program
            d["training"] = program.to_dict() if program else None
        return d

    def __repr__(self):
        return f"<Enrollment {self.id}: {self.user_id} -> {self.training_program_id} ({self.status})>"


class Payment(OwnedModel):
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("idx_payment_user_program_status", "user_id", "training_program_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    training_program_id = db.Column(
        db.String(36),
        db.ForeignKey("training_programs.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default=PAYMENT_METHOD_UPI)
    payment_reference = db.Column(
        db.String(40), nullable=False, unique=True,
        comment="Generated reference embedded in the UPI link (tr=)",
    )
    transaction_reference = db.Column(
        db.String(100), comment="Member-supplied UPI transaction id",
    )
    status = db.Column(
        db.String(30), nullable=False, default=PAYMENT_AWAITING_VERIFICATION,
        comment="awaiting_verification | confirmed | rejected | refunded",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    account = db.relationship("Account", back_populates="payments")
    training_program = db.relationship("TrainingProgram")

    # ── Verification window ──────────────────────────────────────────────

    @property
    def expires_at(self):
        return as_utc(self.created_at) + PAYMENT_WINDOW

    def is_window_elapsed(self, now) -> bool:
        """True once ``now`` is at or past the end of the verification window."""
        return as_utc(now) - as_utc(self.created_at) >= PAYMENT_WINDOW

    def seconds_remaining(self, now) -> int:
        remaining = (self.expires_at - as_utc(now)).total_seconds()
        return max(0, int(remaining))

    def to_dict(self):
        program = self.training_program
        return {
            "id": self.id,
            "user_id": self.user_id,
            "training_id": self.training_program_id,
            "training_title": program.title if program else None,
            "amount": float(self.amount) if self.amount is not None else 0.0,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "transaction_reference": self.transaction_reference,
            "status": self.status,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Payment {self.id}: {self.amount} ({self.status})>"
