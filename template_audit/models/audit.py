"""Audit trail tables — per-tenant settings and the template audit log.

Both tables are partitioned by `tenant_key`, a one-way hash of the tenant's
API credential. Log rows are never updated; they are removed only by
retention cleanup or an explicit clear-all.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from template_audit.models.base import Base, IdType, JsonType, utcnow


class AuditSettingsRecord(Base):
    """One configuration row per tenant, created lazily on first access."""

    __tablename__ = "audit_settings"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    tenant_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    retention_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=30, server_default="30", comment="-1 = keep forever"
    )
    operator_identifier: Mapped[str | None] = mapped_column(String(255))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditSettingsRecord tenant={self.tenant_key[:8]} enabled={self.enabled}>"


class AuditLog(Base):
    """Immutable audit trail entry for one template operation."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_tenant_created", "tenant_key", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    tenant_key: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Operation metadata
    operation_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    operation_status: Mapped[str] = mapped_column(String(20), nullable=False)
    operation_id: Mapped[str | None] = mapped_column(String(100), index=True)

    # Template identification
    entity_slug: Mapped[str | None] = mapped_column(String(255))
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Snapshots and diff, serialized at the store edge
    state_before: Mapped[dict[str, Any] | None] = mapped_column(JsonType)
    state_after: Mapped[dict[str, Any] | None] = mapped_column(JsonType)
    changes: Mapped[list[dict[str, Any]] | None] = mapped_column(JsonType)

    operator_identifier: Mapped[str | None] = mapped_column(String(255))

    # Error tracking
    error_message: Mapped[str | None] = mapped_column(Text)
    error_details: Mapped[Any | None] = mapped_column(JsonType)

    # Bulk operation counters
    is_bulk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    total_count: Mapped[int | None] = mapped_column(Integer)
    success_count: Mapped[int | None] = mapped_column(Integer)
    failure_count: Mapped[int | None] = mapped_column(Integer)

    search_text: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} op={self.operation_type} entity={self.entity_name}>"
