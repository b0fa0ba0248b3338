"""Security observability helpers for authentication and authorization incidents.

Events are held in a bounded in-process buffer and mirrored to the
``academy.services.security_observability`` logger. ``ALERT_RULES`` turn
event bursts into alerts for ``GET /api/v1/admin/security/alerts``.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any

from flask import g, has_request_context, request

logger = logging.getLogger(__name__)

_MAX_SECURITY_EVENTS = 5000
_events: deque[dict[str, Any]] = deque(maxlen=_MAX_SECURITY_EVENTS)


@dataclass(frozen=True)
class AlertRule:
    code: str
    event_type: str
    threshold: int
    severity: str = "medium"
    window_seconds: int = 300


ALERT_RULES = (
    # Any storage-layer rejection means a gate was bypassed
    AlertRule("SEC-STORAGE-POLICY-001", "storage_policy_violation", 1, "high"),
    AlertRule("SEC-GATE-CONTRACT-001", "authorization_without_identity", 1, "high"),
    AlertRule("SEC-OWNERSHIP-001", "ownership_mismatch", 3, "high"),
    AlertRule("SEC-ADMIN-SIGNUP-001", "admin_signup_rejected", 3, "high"),
    AlertRule("SEC-ROLE-001", "role_denied", 5),
    AlertRule("SEC-SELF-001", "self_access_denied", 5),
    AlertRule("SEC-TOKEN-001", "token_rejected", 10),
    AlertRule("SEC-LOGIN-001", "login_failed", 5),
)

_SEVERITY_LEVEL = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _from_request() -> dict[str, Any]:
    if not has_request_context():
        return {}
    identity = getattr(g, "identity", None)
    return {
        "user_id": identity.id if identity else None,
        "role": identity.role if identity else None,
        "path": request.path,
        "method": request.method,
        "request_id": getattr(g, "request_id", None),
    }


def record_security_event(
    *,
    event_type: str,
    reason: str,
    severity: str = "warning",
    user_id: str | None = None,
    role: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Store one security event and log it at a level matching its severity."""
    scope = _from_request()
    event = {
        "ts": time.time(),
        "event_type": event_type,
        "severity": severity,
        "reason": reason,
        "user_id": user_id if user_id is not None else scope.get("user_id"),
        "role": role if role is not None else scope.get("role"),
        "path": scope.get("path"),
        "method": scope.get("method"),
        "request_id": scope.get("request_id"),
        "details": details or {},
    }
    _events.append(event)

    logger.log(
        _SEVERITY_LEVEL.get(severity, logging.WARNING),
        "Security event %s: %s", event_type, reason,
        extra={
            "event_type": event_type,
            "user_id": event["user_id"],
            "role": event["role"],
            "request_id": event["request_id"],
        },
    )
    return event


def get_recent_security_events(*, seconds: int = 3600, event_type: str | None = None) -> list[dict[str, Any]]:
    cutoff = time.time() - seconds
    return [
        e for e in _events
        if e["ts"] >= cutoff and (event_type is None or e["event_type"] == event_type)
    ]


def evaluate_security_alerts(*, now: float | None = None) -> dict[str, Any]:
    now = now or time.time()
    counts: dict[str, int] = {}
    alerts = []

    for rule in ALERT_RULES:
        window_start = now - rule.window_seconds
        hits = [e for e in _events if e["event_type"] == rule.event_type and e["ts"] >= window_start]
        counts[rule.event_type] = len(hits)
        if hits and len(hits) >= rule.threshold:
            alerts.append({**asdict(rule), "observed": len(hits), "latest": hits[-1]})

    return {"counts": counts, "alerts": alerts}


def reset_security_events() -> None:
    _events.clear()
