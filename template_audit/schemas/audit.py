"""Pydantic schemas for audit entries, settings, filters, and statistics."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from template_audit.config import MAX_RETENTION_DAYS, settings
from template_audit.models.base import as_utc
from template_audit.models.enums import (
    ChangeType,
    OperationStatus,
    OperationType,
    SortDirection,
    SortField,
)
from template_audit.schemas.snapshot import TemplateSnapshot

# ── Entries ──────────────────────────────────────────────────────────


class ChangeRecord(BaseModel):
    """One field-level difference. Produced only by the diff engine."""

    model_config = ConfigDict(frozen=True)

    field: str
    old_value: Any = None
    new_value: Any = None
    change_type: ChangeType


class BulkItemResult(BaseModel):
    """Per-template outcome inside a bulk operation."""

    name: str
    status: Literal["success", "failure"]
    error: str | None = None


class NewAuditEntry(BaseModel):
    """An entry about to be written. The store assigns id and created_at.

    Shape rules:
    - update/delete carry `state_before`; create/restore carry `state_after`
    - `changes` only on update
    - bulk entries carry counts with success + failure == total
    """

    model_config = ConfigDict(frozen=True)

    tenant_key: str
    operation_type: OperationType
    operation_status: OperationStatus = OperationStatus.SUCCESS
    operation_id: str | None = None

    entity_slug: str | None = None
    entity_name: str

    state_before: TemplateSnapshot | None = None
    state_after: TemplateSnapshot | None = None
    changes: list[ChangeRecord] | None = None

    operator_identifier: str | None = None
    error_message: str | None = None
    error_details: Any = None

    is_bulk: bool = False
    total_count: int | None = Field(default=None, ge=0)
    success_count: int | None = Field(default=None, ge=0)
    failure_count: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_shape(self) -> NewAuditEntry:
        op = self.operation_type
        if self.is_bulk:
            counts = (self.total_count, self.success_count, self.failure_count)
            if any(c is None for c in counts):
                msg = "Bulk entries require total_count, success_count and failure_count"
                raise ValueError(msg)
            if self.success_count + self.failure_count != self.total_count:  # type: ignore[operator]
                msg = (
                    f"success_count ({self.success_count}) + failure_count ({self.failure_count}) "
                    f"must equal total_count ({self.total_count})"
                )
                raise ValueError(msg)
        else:
            if self.state_before is None and self.state_after is None:
                msg = "An entry needs state_before, state_after, or both"
                raise ValueError(msg)
            if op in (OperationType.UPDATE, OperationType.DELETE) and self.state_before is None:
                msg = f"{op.value} entries require state_before"
                raise ValueError(msg)
            if op in (OperationType.CREATE, OperationType.RESTORE) and self.state_after is None:
                msg = f"{op.value} entries require state_after"
                raise ValueError(msg)
        if self.changes is not None and op is not OperationType.UPDATE:
            msg = "changes are only recorded for update entries"
            raise ValueError(msg)
        return self


class AuditLogEntry(BaseModel):
    """A persisted audit entry as returned by the log store."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    tenant_key: str
    created_at: datetime

    operation_type: OperationType
    operation_status: OperationStatus
    operation_id: str | None = None

    entity_slug: str | None = None
    entity_name: str

    state_before: TemplateSnapshot | None = None
    state_after: TemplateSnapshot | None = None
    changes: list[ChangeRecord] | None = None

    operator_identifier: str | None = None
    error_message: str | None = None
    error_details: Any = None

    is_bulk: bool = False
    total_count: int | None = None
    success_count: int | None = None
    failure_count: int | None = None

    search_text: str

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return as_utc(v)  # type: ignore[return-value]


# ── Settings ─────────────────────────────────────────────────────────


class AuditSettings(BaseModel):
    """Per-tenant audit configuration."""

    model_config = ConfigDict(from_attributes=True)

    enabled: bool = False
    retention_days: int = 30
    operator_identifier: str | None = None
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return as_utc(v)  # type: ignore[return-value]

    @property
    def keeps_forever(self) -> bool:
        return self.retention_days == -1


class AuditSettingsUpdate(BaseModel):
    """Partial settings update — only fields that are set are applied."""

    enabled: bool | None = None
    retention_days: int | None = None
    operator_identifier: str | None = None

    @field_validator("retention_days")
    @classmethod
    def validate_retention(cls, v: int | None) -> int | None:
        """Allow -1 (forever) or 1..MAX_RETENTION_DAYS days."""
        if v is not None and v != -1 and not 1 <= v <= MAX_RETENTION_DAYS:
            msg = f"retention_days must be -1 (forever) or between 1 and {MAX_RETENTION_DAYS}"
            raise ValueError(msg)
        return v


# ── Queries ──────────────────────────────────────────────────────────

_SORT_ALIASES = {
    "createdAt": "created_at",
    "entityName": "entity_name",
    "operationType": "operation_type",
    "template_name": "entity_name",
}


class AuditLogFilter(BaseModel):
    """Filter, ordering and pagination for log listings."""

    operation_type: OperationType | None = None
    entity_name: str | None = None
    status: OperationStatus | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = Field(default_factory=lambda: settings.audit.default_page_size, ge=1)
    offset: int = Field(default=0, ge=0)
    order_by: SortField = SortField.CREATED_AT
    order_dir: SortDirection = SortDirection.DESC

    @field_validator("limit")
    @classmethod
    def cap_limit(cls, v: int) -> int:
        return min(v, settings.audit.max_page_size)

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_to_utc(cls, v: datetime | None) -> datetime | None:
        """Naive datetimes are taken as UTC; aware ones are converted."""
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @field_validator("order_by", mode="before")
    @classmethod
    def accept_sort_aliases(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _SORT_ALIASES.get(v, v)
        return v

    @field_validator("order_dir", mode="before")
    @classmethod
    def lowercase_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower()
        return v


class SearchRequest(BaseModel):
    """Body of a free-text search request."""

    query: str
    filter: AuditLogFilter | None = None


class BulkLogRequest(BaseModel):
    """Body of a bulk-operation report, sent once a batch (e.g. an import) finishes."""

    operation_type: OperationType = OperationType.IMPORT
    total_count: int = Field(ge=0)
    success_count: int = Field(ge=0)
    failure_count: int = Field(ge=0)
    details: list[BulkItemResult] | None = None
    operator_identifier: str | None = None

    @model_validator(mode="after")
    def check_counts(self) -> BulkLogRequest:
        if self.success_count + self.failure_count != self.total_count:
            msg = (
                f"success_count ({self.success_count}) + failure_count ({self.failure_count}) "
                f"must equal total_count ({self.total_count})"
            )
            raise ValueError(msg)
        return self


class CleanupRequest(BaseModel):
    """Body of a cleanup request. `clear_all` wipes every entry for the tenant."""

    clear_all: bool = False


class AuditStats(BaseModel):
    """Per-tenant audit log statistics."""

    total_logs: int
    by_operation: dict[str, int]
    oldest_entry: datetime | None = None
    storage_size_mb: float
