"""
Administrator activity trail.

``record_admin_activity`` runs in its own unit of work *after* the audited
operation has committed, so a failed audit write is logged and swallowed
without touching the business change.
"""

import json
import logging

from flask import has_request_context, request

from academy.core.exceptions import AcademyError
from academy.core.identity import Identity
from academy.models.audit import AdminActivityLog
from academy.storage.context import access_context

logger = logging.getLogger(__name__)


def _request_origin() -> tuple[str | None, str | None]:
    if not has_request_context():
        return None, None
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip_address = forwarded.split(",")[0].strip() or request.remote_addr
    return ip_address, (request.headers.get("User-Agent") or "")[:500]


def record_admin_activity(
    identity: Identity,
    *,
    action: str,
    resource_type: str,
    resource_id: str | None = None,
    details: dict | None = None,
) -> bool:
    """
    Append one activity record. Best-effort: returns False on failure.
    """
    ip_address, user_agent = _request_origin()
    try:
        with access_context(identity) as session:
            session.add(AdminActivityLog(
                admin_id=identity.id,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                details_json=json.dumps(details or {}, default=str),
                ip_address=ip_address,
                user_agent=user_agent,
            ))
        return True
    except AcademyError as e:
        logger.error(
            "Admin activity not recorded (%s on %s/%s by %s): %s",
            action, resource_type, resource_id, identity.id, e.log_detail or e.message,
        )
        return False


def list_admin_activity(identity: Identity, *, admin_id=None, action=None, limit=100) -> list[dict]:
    with access_context(identity):
        q = AdminActivityLog.query
        if admin_id:
            q = q.filter_by(admin_id=admin_id)
        if action:
            q = q.filter_by(action=action)
        logs = q.order_by(AdminActivityLog.created_at.desc()).limit(limit).all()
        return [log.to_dict() for log in logs]
