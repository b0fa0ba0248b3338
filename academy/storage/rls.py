"""
Native PostgreSQL row-level security.

Mirrors ``academy.storage.policies`` inside the database, keyed on the
transaction-local settings written by ``access_context``:

    app.current_user_id    bound identity id ('' for service principals)
    app.current_user_role  member | administrator | anonymous | system

``FORCE ROW LEVEL SECURITY`` subjects the table owner as well, so a
connection with no bound context sees and changes nothing. Statements are
idempotent (``CREATE OR REPLACE`` / ``DROP POLICY IF EXISTS``) and are
applied at startup and by the initial migration.
"""

import logging

import sqlalchemy as sa

logger = logging.getLogger(__name__)

_FUNCTIONS = [
    """
    CREATE OR REPLACE FUNCTION academy_current_role() RETURNS text
    LANGUAGE sql STABLE AS $$
        SELECT coalesce(current_setting('app.current_user_role', true), '')
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION academy_current_user_id() RETURNS text
    LANGUAGE sql STABLE AS $$
        SELECT coalesce(current_setting('app.current_user_id', true), '')
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION academy_is_unrestricted() RETURNS boolean
    LANGUAGE sql STABLE AS $$
        SELECT academy_current_role() IN ('administrator', 'system')
    $$
    """,
]

_UNRESTRICTED = "academy_is_unrestricted()"
_IS_MEMBER = "academy_current_role() = 'member'"

# table -> [(policy name, command, USING, WITH CHECK)]
_POLICIES = {
    "accounts": [
        ("accounts_select", "SELECT",
         f"{_UNRESTRICTED} OR ({_IS_MEMBER} AND id = academy_current_user_id())", None),
        ("accounts_insert", "INSERT", None,
         f"{_UNRESTRICTED} OR (academy_current_role() = 'anonymous' "
         "AND role = 'member' AND is_admin = false)"),
        # Only members are restricted, so "unchanged role" is "still a plain member"
        ("accounts_update", "UPDATE",
         f"{_UNRESTRICTED} OR ({_IS_MEMBER} AND id = academy_current_user_id())",
         f"{_UNRESTRICTED} OR ({_IS_MEMBER} AND id = academy_current_user_id() "
         "AND role = 'member' AND is_admin = false)"),
        ("accounts_delete", "DELETE", _UNRESTRICTED, None),
    ],
    "training_programs": [
        ("training_programs_select", "SELECT",
         f"{_UNRESTRICTED} OR (academy_current_role() IN ('member', 'anonymous') AND is_active)",
         None),
        ("training_programs_insert", "INSERT", None, _UNRESTRICTED),
        ("training_programs_update", "UPDATE", _UNRESTRICTED, _UNRESTRICTED),
        ("training_programs_delete", "DELETE", _UNRESTRICTED, None),
    ],
    "admin_activity_logs": [
        # No UPDATE / DELETE policy: append-only for every role
        ("admin_activity_logs_select", "SELECT", _UNRESTRICTED, None),
        ("admin_activity_logs_insert", "INSERT", None, _UNRESTRICTED),
    ],
    "contact_messages": [
        ("contact_messages_select", "SELECT", _UNRESTRICTED, None),
        ("contact_messages_insert", "INSERT", None,
         f"academy_current_role() <> '' AND (user_id IS NULL OR {_UNRESTRICTED} "
         "OR user_id = academy_current_user_id())"),
        ("contact_messages_update", "UPDATE", _UNRESTRICTED, _UNRESTRICTED),
    ],
}

for _table in ("enrollments", "payments", "certificates"):
    _owned = f"{_UNRESTRICTED} OR ({_IS_MEMBER} AND user_id = academy_current_user_id())"
    _POLICIES[_table] = [(f"{_table}_owner", "ALL", _owned, _owned)]


def row_level_security_statements() -> list[str]:
    """Ordered DDL enabling RLS and (re)creating every policy."""
    statements = [s.strip() for s in _FUNCTIONS]
    for table, policies in _POLICIES.items():
        statements.append(f'ALTER TABLE "{table}" ENABLE ROW LEVEL SECURITY')
        statements.append(f'ALTER TABLE "{table}" FORCE ROW LEVEL SECURITY')
        for name, command, using, check in policies:
            statements.append(f'DROP POLICY IF EXISTS {name} ON "{table}"')
            sql = f'CREATE POLICY {name} ON "{table}" FOR {command}'
            if using:
                sql += f" USING ({using})"
            if check:
                sql += f" WITH CHECK ({check})"
            statements.append(sql)
    return statements


def install_row_level_security(app, db) -> bool:
    """
    Apply the RLS policies on PostgreSQL. Returns True when applied.

    Other dialects rely on the ORM policies alone.
    """
    if db.engine.dialect.name != "postgresql":
        return False

    with db.engine.begin() as conn:
        conn.execute(sa.text("SET LOCAL lock_timeout = '5s'"))
        for statement in row_level_security_statements():
            conn.execute(sa.text(statement))
    app.logger.info("Row-level security policies applied to %d tables", len(_POLICIES))
    return True
