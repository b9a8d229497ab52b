"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store the value.
"""

from __future__ import annotations

from enum import Enum


class OperationType(str, Enum):
    """Kind of template operation an audit entry describes."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    IMPORT = "import"
    RESTORE = "restore"


class OperationStatus(str, Enum):
    """Outcome of the audited operation."""

    SUCCESS = "success"
    PARTIAL = "partial"  # bulk only: some items failed
    FAILURE = "failure"


class ChangeType(str, Enum):
    """How a single field changed between two snapshots."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class SortField(str, Enum):
    """Columns the log listing may be ordered by."""

    CREATED_AT = "created_at"
    ENTITY_NAME = "entity_name"
    OPERATION_TYPE = "operation_type"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
