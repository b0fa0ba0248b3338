"""
Contact Service — public contact form and its administrator inbox.

Anyone may submit; when the form is sent while signed in, the message is
attributed to the caller's account.
"""

import logging

from academy.core.exceptions import ResourceNotFound
from academy.core.identity import ANONYMOUS, Identity
from academy.models import isoformat
from academy.models.contact import CONTACT_STATUSES, ContactMessage
from academy.services.auth_service import normalize_email
from academy.storage.context import access_context
from academy.utils.helpers import clean_text, one_of

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


def submit_message(identity: Identity | None, data: dict) -> dict:
    full_name = clean_text(data.get("full_name"), "Full name", required=True, max_length=200)
    message = clean_text(data.get("message"), "Message", required=True, max_length=MAX_MESSAGE_LENGTH)
    subject = clean_text(data.get("subject"), "Subject", max_length=300)
    email = normalize_email(data.get("email"))

    caller = identity or ANONYMOUS
    with access_context(caller) as session:
        contact = ContactMessage(
            user_id=caller.id,
            full_name=full_name,
            email=email,
            subject=subject,
            message=message,
        )
        session.add(contact)
        session.flush()
        result = {"id": contact.id, "status": contact.status, "created_at": isoformat(contact.created_at)}

    # No notification is sent; the log line records receipt
    logger.info("Contact message %s received from %s", result["id"], email)
    return result


def list_messages(identity: Identity, *, status=None, search=None, limit=200) -> list[dict]:
    with access_context(identity):
        q = ContactMessage.query
        if status:
            q = q.filter_by(status=status)
        if search:
            pattern = f"%{search.strip()}%"
            q = q.filter(
                ContactMessage.full_name.ilike(pattern)
                | ContactMessage.email.ilike(pattern)
                | ContactMessage.subject.ilike(pattern)
            )
        messages = q.order_by(ContactMessage.created_at.desc()).limit(limit).all()
        return [m.to_dict() for m in messages]


def update_message_status(identity: Identity, message_id, status) -> dict:
    one_of(status, CONTACT_STATUSES, f"Status must be one of: {', '.join(sorted(CONTACT_STATUSES))}")
    with access_context(identity):
        contact = ContactMessage.query.filter_by(id=message_id).first()
        if contact is None:
            raise ResourceNotFound("Contact message", resource_id=message_id)
        contact.status = status
        return contact.to_dict()
