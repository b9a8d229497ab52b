"""SQLAlchemy ORM models for the template audit trail.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from template_audit.models.audit import AuditLog, AuditSettingsRecord
from template_audit.models.base import Base
from template_audit.models.enums import (
    ChangeType,
    OperationStatus,
    OperationType,
    SortDirection,
    SortField,
)

__all__ = [
    # Base
    "Base",
    # Models
    "AuditLog",
    "AuditSettingsRecord",
    # Enums
    "ChangeType",
    "OperationStatus",
    "OperationType",
    "SortDirection",
    "SortField",
]
