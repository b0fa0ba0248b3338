"""
Academy Enrollment API
SQLAlchemy models package.

``db`` is the Flask-SQLAlchemy extension shared by every model module and
bound to the app in ``create_app``. Objects stay readable after commit
because each unit of work closes its session on exit
(see ``academy.storage.context``).
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy(session_options={"expire_on_commit": False})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on round trip; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None
