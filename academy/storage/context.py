"""
Session-context propagation to the data layer.

``access_context(identity)`` is the unit of work for every database-bound
operation. It:

  1. borrows exactly one pooled connection through the Flask-SQLAlchemy
     session and begins a transaction on it,
  2. binds ``AccessContext(user_id, role)`` to that connection
     (``Connection.info``; on PostgreSQL also the transaction-local settings
     ``app.current_user_id`` / ``app.current_user_role`` read by the RLS
     policies),
  3. commits on success, rolls back on any failure,
  4. clears the binding and closes the session, returning the connection to
     the pool on every exit path.

The binding is also dropped by a pool ``checkin`` listener, so a connection
can never carry a previous caller's context into its next checkout.

Usage:
    with access_context(identity) as session:
        enrollment = session.get(Enrollment, enrollment_id)
        ...
        result = enrollment.to_dict()
    return result
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError

from academy.core.exceptions import AcademyError, StoragePolicyViolation
from academy.core.identity import SYSTEM, Identity
from academy.models import db
from academy.storage.errors import classify_db_error

logger = logging.getLogger(__name__)

CONTEXT_KEY = "academy.access_context"

_BIND_POSTGRES_CONTEXT = text(
    "SELECT set_config('app.current_user_id', :user_id, true), "
    "set_config('app.current_user_role', :role, true)"
)


@dataclass(frozen=True)
class AccessContext:
    user_id: str | None
    role: str


def bound_context(connection) -> AccessContext | None:
    """Return the context bound to ``connection``, or None when unbound."""
    return connection.info.get(CONTEXT_KEY)


def current_access_context(session) -> AccessContext | None:
    """Context bound to the connection ``session`` is currently using."""
    return bound_context(session.connection())


@contextmanager
def access_context(identity: Identity):
    """Run one transaction with ``identity`` bound to its connection."""
    session = db.session
    if session().in_transaction():  # scoped_session proxies everything but this
        if current_access_context(session) is not None:
            raise RuntimeError("access_context blocks cannot be nested")
        # Leftover unbound work (e.g. an autobegun read) never carries over
        session.rollback()

    info = None
    try:
        connection = session.connection()
        info = connection.info
        info[CONTEXT_KEY] = AccessContext(user_id=identity.id, role=identity.role)
        if connection.dialect.name == "postgresql":
            connection.execute(
                _BIND_POSTGRES_CONTEXT,
                {"user_id": identity.id or "", "role": identity.role},
            )
        yield session
        session.commit()
    except AcademyError:
        session.rollback()
        raise
    except (SQLAlchemyError, StoragePolicyViolation) as exc:
        session.rollback()
        raise classify_db_error(exc) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        if info is not None:
            info.pop(CONTEXT_KEY, None)
        session.close()


def system_context():
    """Unrestricted unit of work for credential lookups, gate checks and seeding."""
    return access_context(SYSTEM)


# ── Pool hygiene ─────────────────────────────────────────────────────────────

def _clear_on_checkin(dbapi_connection, connection_record):
    if connection_record is not None and connection_record.info.pop(CONTEXT_KEY, None) is not None:
        logger.debug("Cleared access context left on pooled connection")


def install_pool_hygiene(engine) -> None:
    """Drop any access context when a connection returns to the pool."""
    if not event.contains(engine, "checkin", _clear_on_checkin):
        event.listen(engine, "checkin", _clear_on_checkin)
