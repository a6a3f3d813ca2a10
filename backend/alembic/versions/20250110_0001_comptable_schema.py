"""Accounting declaration schema: organisations, clients, periods, files and history."""

from __future__ import annotations

from alembic import context, op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20250110_0001"
down_revision = None
branch_labels = None
depends_on = None


def _dialect_name() -> str:
    bind = op.get_bind()
    if bind is not None:
        return bind.dialect.name
    ctx = context.get_context()
    return ctx.dialect.name if ctx is not None else ""


def upgrade() -> None:
    uuid_type = sa.CHAR(length=36)
    if _dialect_name() == "postgresql":
        uuid_type = postgresql.UUID(as_uuid=True)

    op.create_table(
        "organizations",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "clients",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "organization_id",
            uuid_type,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("clients_organization_idx", "clients", ["organization_id"], unique=False)

    op.create_table(
        "comptable_periods",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "client_id",
            uuid_type,
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("batch_id", uuid_type, nullable=False, unique=True),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="PENDING"),
        sa.Column("dag_run_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "period_end >= period_start", name="ck_comptable_periods_valid_range"
        ),
    )
    op.create_index(
        "comptable_periods_client_status_idx",
        "comptable_periods",
        ["client_id", "status"],
        unique=False,
    )
    op.create_index(
        "comptable_periods_created_at_idx", "comptable_periods", ["created_at"], unique=False
    )

    op.create_table(
        "comptable_files",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("file_type", sa.String(length=19), nullable=False),
        sa.Column("file_year", sa.Integer(), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="SUCCESS"),
        sa.Column(
            "processing_status", sa.String(length=10), nullable=False, server_default="PENDING"
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("batch_id", uuid_type, nullable=False),
        sa.Column(
            "period_id",
            uuid_type,
            sa.ForeignKey("comptable_periods.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "client_id",
            uuid_type,
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("uploaded_by", sa.String(length=255), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("comptable_files_batch_idx", "comptable_files", ["batch_id"], unique=False)
    op.create_index("comptable_files_client_idx", "comptable_files", ["client_id"], unique=False)

    op.create_table(
        "file_history",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column(
            "file_id",
            uuid_type,
            sa.ForeignKey("comptable_files.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("action", sa.String(length=16), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(length=255), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("file_history_file_idx", "file_history", ["file_id"], unique=False)


def downgrade() -> None:
    op.drop_index("file_history_file_idx", table_name="file_history")
    op.drop_table("file_history")
    op.drop_index("comptable_files_client_idx", table_name="comptable_files")
    op.drop_index("comptable_files_batch_idx", table_name="comptable_files")
    op.drop_table("comptable_files")
    op.drop_index("comptable_periods_created_at_idx", table_name="comptable_periods")
    op.drop_index("comptable_periods_client_status_idx", table_name="comptable_periods")
    op.drop_table("comptable_periods")
    op.drop_index("clients_organization_idx", table_name="clients")
    op.drop_table("clients")
    op.drop_table("organizations")
