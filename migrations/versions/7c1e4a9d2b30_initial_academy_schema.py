"""initial_academy_schema

Accounts, training programs, enrollments, payments, certificates,
administrator activity records and contact messages. On PostgreSQL also
enables row-level security with the policies from academy.storage.rls.

Revision ID: 7c1e4a9d2b30
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9d2b30"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "accounts" not in existing_tables:
        op.create_table(
            "accounts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("profession", sa.String(length=20), nullable=True),
            sa.Column("college", sa.String(length=200), nullable=True),
            sa.Column("company", sa.String(length=200), nullable=True),
            sa.Column("password_hash", sa.String(length=256), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="member"),
            sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.CheckConstraint("role IN ('member', 'administrator')", name="ck_accounts_role"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    if "training_programs" not in existing_tables:
        op.create_table(
            "training_programs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("duration", sa.String(length=100), nullable=True),
            sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_training_programs_is_active", "training_programs", ["is_active"])

    if "enrollments" not in existing_tables:
        op.create_table(
            "enrollments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("training_program_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="awaiting_payment"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["accounts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["training_program_id"], ["training_programs.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "training_program_id", name="uq_enrollment_user_program"),
        )
        op.create_index("ix_enrollments_user_id", "enrollments", ["user_id"])
        op.create_index("ix_enrollments_training_program_id", "enrollments", ["training_program_id"])

    if "payments" not in existing_tables:
        op.create_table(
            "payments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("training_program_id", sa.String(length=36), nullable=False),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("payment_method", sa.String(length=20), nullable=False, server_default="UPI"),
            sa.Column("payment_reference", sa.String(length=40), nullable=False),
            sa.Column("transaction_reference", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="awaiting_verification"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["accounts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["training_program_id"], ["training_programs.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("payment_reference"),
        )
        op.create_index("ix_payments_user_id", "payments", ["user_id"])
        op.create_index("ix_payments_training_program_id", "payments", ["training_program_id"])
        op.create_index(
            "idx_payment_user_program_status", "payments",
            ["user_id", "training_program_id", "status"],
        )

    if "certificates" not in existing_tables:
        op.create_table(
            "certificates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("training_program_id", sa.String(length=36), nullable=False),
            sa.Column("certificate_id", sa.String(length=50), nullable=False),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("file_url", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["accounts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["training_program_id"], ["training_programs.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("certificate_id"),
        )
        op.create_index("ix_certificates_user_id", "certificates", ["user_id"])
        op.create_index("ix_certificates_training_program_id", "certificates", ["training_program_id"])

    if "admin_activity_logs" not in existing_tables:
        op.create_table(
            "admin_activity_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("admin_id", sa.String(length=36), nullable=True),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("resource_type", sa.String(length=30), nullable=False),
            sa.Column("resource_id", sa.String(length=36), nullable=True),
            sa.Column("details_json", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["admin_id"], ["accounts.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_admin_activity_logs_admin_id", "admin_activity_logs", ["admin_id"])
        op.create_index("idx_admin_activity_resource", "admin_activity_logs", ["resource_type", "resource_id"])
        op.create_index("idx_admin_activity_action", "admin_activity_logs", ["action"])
        op.create_index("idx_admin_activity_ts", "admin_activity_logs", ["created_at"])

    if "contact_messages" not in existing_tables:
        op.create_table(
            "contact_messages",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=True),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=300), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="new"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["accounts.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_contact_messages_status", "contact_messages", ["status"])

    if bind.dialect.name == "postgresql":
        from academy.storage.rls import row_level_security_statements
        for statement in row_level_security_statements():
            op.execute(sa.text(statement))


def downgrade():
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for table in ("accounts", "training_programs", "enrollments", "payments",
                      "certificates", "admin_activity_logs", "contact_messages"):
            op.execute(sa.text(f'ALTER TABLE "{table}" DISABLE ROW LEVEL SECURITY'))

    op.drop_table("contact_messages")
    op.drop_table("admin_activity_logs")
    op.drop_table("certificates")
    op.drop_table("payments")
    op.drop_table("enrollments")
    op.drop_table("training_programs")
    op.drop_table("accounts")
