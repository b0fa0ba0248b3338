"""
Catalog Service — training program (offering) CRUD.

Members and anonymous callers see active programs only; the storage
policies filter inactive rows out for them, so ``list_programs`` needs no
role branching of its own.
"""

import logging
from decimal import Decimal, InvalidOperation

from academy.core.exceptions import ResourceConflict, ResourceNotFound, ValidationFailed
from academy.core.identity import Identity
from academy.models.catalog import TrainingProgram
from academy.models.enrollment import Enrollment
from academy.storage.context import access_context
from academy.utils.helpers import clean_text

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "duration", "price", "is_active")


def _parse_price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailed("Price must be a number")
    if price < 0 or not price.is_finite():
        raise ValidationFailed("Price must be zero or positive")
    return price.quantize(Decimal("0.01"))


def _clean(data: dict, *, partial: bool) -> dict:
    fields = {k: data[k] for k in EDITABLE_FIELDS if k in data}
    if not partial or "title" in fields:
        fields["title"] = clean_text(fields.get("title"), "Title", required=True, max_length=200)
    if "description" in fields:
        fields["description"] = clean_text(fields["description"], "Description")
    if "duration" in fields:
        fields["duration"] = clean_text(fields["duration"], "Duration", max_length=100)
    if "price" in fields:
        fields["price"] = _parse_price(fields["price"])
    elif not partial:
        raise ValidationFailed("Price is required")
    if "is_active" in fields:
        fields["is_active"] = bool(fields["is_active"])
    return fields


def _get_program(program_id) -> TrainingProgram:
    program = TrainingProgram.query.filter_by(id=program_id).first()
    if program is None:
        raise ResourceNotFound("Training program", resource_id=program_id)
    return program


def list_programs(identity: Identity, *, include_inactive=False) -> list[dict]:
    with access_context(identity):
        q = TrainingProgram.query
        if not include_inactive:
            q = q.filter_by(is_active=True)
        programs = q.order_by(TrainingProgram.created_at.desc()).all()
        return [p.to_dict() for p in programs]


def get_program(identity: Identity, program_id) -> dict:
    with access_context(identity):
        return _get_program(program_id).to_dict()


def create_program(identity: Identity, data: dict) -> dict:
    fields = _clean(data, partial=False)
    with access_context(identity) as session:
        program = TrainingProgram(**fields)
        session.add(program)
        session.flush()
        result = program.to_dict()
    logger.info("Training program %s created by %s", result["id"], identity.id)
    return result


def update_program(identity: Identity, program_id, data: dict) -> dict:
    fields = _clean(data, partial=True)
    if not fields:
        raise ValidationFailed("No updatable fields supplied")
    with access_context(identity):
        program = _get_program(program_id)
        for field, value in fields.items():
            setattr(program, field, value)
        return program.to_dict()


def delete_program(identity: Identity, program_id) -> dict:
    """Delete a program. Blocked while any enrollment references it."""
    with access_context(identity) as session:
        program = _get_program(program_id)
        enrolled = Enrollment.query.filter_by(training_program_id=program_id).count()
        if enrolled:
            raise ResourceConflict(
                "Cannot delete training program with existing enrollments",
                details={"enrollment_count": enrolled},
            )
        snapshot = program.to_dict()
        session.delete(program)

    logger.info("Training program %s deleted by %s", program_id, identity.id)
    return snapshot
