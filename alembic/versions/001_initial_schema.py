"""Initial schema — audit settings and audit log tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def upgrade() -> None:
    op.create_table(
        "audit_settings",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("tenant_key", sa.String(64), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("retention_days", sa.Integer(), server_default="30", nullable=False, comment="-1 = keep forever"),
        sa.Column("operator_identifier", sa.String(255)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_key"),
        sa.CheckConstraint(
            "retention_days = -1 OR retention_days BETWEEN 1 AND 36500",
            name="ck_audit_settings_retention_days",
        ),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("tenant_key", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("operation_type", sa.String(20), nullable=False),
        sa.Column("operation_status", sa.String(20), nullable=False),
        sa.Column("operation_id", sa.String(100)),
        sa.Column("entity_slug", sa.String(255)),
        sa.Column("entity_name", sa.String(255), nullable=False),
        sa.Column("state_before", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("state_after", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("changes", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("operator_identifier", sa.String(255)),
        sa.Column("error_message", sa.Text()),
        sa.Column("error_details", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("is_bulk", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("total_count", sa.Integer()),
        sa.Column("success_count", sa.Integer()),
        sa.Column("failure_count", sa.Integer()),
        sa.Column("search_text", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "operation_type IN ('create', 'update', 'delete', 'import', 'restore')",
            name="ck_audit_logs_operation_type",
        ),
        sa.CheckConstraint(
            "operation_status IN ('success', 'partial', 'failure')",
            name="ck_audit_logs_operation_status",
        ),
        sa.CheckConstraint(
            "NOT is_bulk OR success_count + failure_count = total_count",
            name="ck_audit_logs_bulk_counts",
        ),
    )
    op.create_index("ix_audit_logs_tenant_created", "audit_logs", ["tenant_key", "created_at"])
    op.create_index("ix_audit_logs_entity_name", "audit_logs", ["entity_name"])
    op.create_index("ix_audit_logs_operation_type", "audit_logs", ["operation_type"])
    op.create_index("ix_audit_logs_operation_id", "audit_logs", ["operation_id"])
    op.create_index("ix_audit_logs_search_text", "audit_logs", ["search_text"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_search_text", table_name="audit_logs")
    op.drop_index("ix_audit_logs_operation_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_operation_type", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity_name", table_name="audit_logs")
    op.drop_index("ix_audit_logs_tenant_created", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("audit_settings")
