"""Audit log persistence and query functions.

Every function takes a tenant key and constrains its SQL to that tenant;
there is no query path that can read or modify another tenant's rows.
Snapshots and changes are (de)serialized to JSON only here.

Functions take the caller's session and flush; the caller commits.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from template_audit.models.audit import AuditLog
from template_audit.models.base import as_utc
from template_audit.models.enums import OperationType, SortDirection, SortField
from template_audit.schemas.audit import AuditLogEntry, AuditLogFilter, AuditStats, NewAuditEntry

logger = logging.getLogger(__name__)

# Rough average size of one stored entry, for the storage estimate
_AVG_ENTRY_KB = 3.5

_SORT_COLUMNS = {
    SortField.CREATED_AT: AuditLog.created_at,
    SortField.ENTITY_NAME: AuditLog.entity_name,
    SortField.OPERATION_TYPE: AuditLog.operation_type,
}


def build_search_text(entry: NewAuditEntry) -> str:
    """Lowercase text indexed for free-text search.

    Labels come from whichever snapshot is present, so deleted templates
    stay searchable by label.
    """
    parts: list[str] = [
        entry.entity_name,
        entry.operation_type.value,
        entry.operation_status.value,
    ]
    if entry.entity_slug:
        parts.append(entry.entity_slug)
    if entry.operation_id:
        parts.append(entry.operation_id)

    snapshot = entry.state_after or entry.state_before
    if snapshot is not None:
        parts.extend(sorted(snapshot.labels))

    return " ".join(p for p in parts if p).lower()


async def insert_entry(db: AsyncSession, entry: NewAuditEntry, now: datetime | None = None) -> int:
    """Persist a new entry and return its id. `created_at` is assigned here."""
    if not entry.tenant_key:
        msg = "Audit entries require a tenant key"
        raise ValueError(msg)

    row = AuditLog(
        tenant_key=entry.tenant_key,
        created_at=now or datetime.now(UTC),
        operation_type=entry.operation_type.value,
        operation_status=entry.operation_status.value,
        operation_id=entry.operation_id,
        entity_slug=entry.entity_slug,
        entity_name=entry.entity_name,
        state_before=entry.state_before.model_dump(mode="json") if entry.state_before else None,
        state_after=entry.state_after.model_dump(mode="json") if entry.state_after else None,
        changes=[c.model_dump(mode="json") for c in entry.changes] if entry.changes is not None else None,
        operator_identifier=entry.operator_identifier,
        error_message=entry.error_message,
        error_details=entry.error_details,
        is_bulk=entry.is_bulk,
        total_count=entry.total_count,
        success_count=entry.success_count,
        failure_count=entry.failure_count,
        search_text=build_search_text(entry),
    )
    db.add(row)
    await db.flush()
    logger.debug("Audit entry %d written: %s %s", row.id, row.operation_type, row.entity_name)
    return row.id


async def get_entry(db: AsyncSession, tenant_key: str, entry_id: int) -> AuditLogEntry | None:
    """Fetch one entry. Another tenant's id is indistinguishable from a missing one."""
    result = await db.execute(
        select(AuditLog).where(AuditLog.id == entry_id, AuditLog.tenant_key == tenant_key)
    )
    row = result.scalar_one_or_none()
    return AuditLogEntry.model_validate(row) if row is not None else None


def _filter_conditions(tenant_key: str, flt: AuditLogFilter) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = [AuditLog.tenant_key == tenant_key]
    if flt.operation_type is not None:
        conditions.append(AuditLog.operation_type == flt.operation_type.value)
    if flt.entity_name:
        conditions.append(AuditLog.entity_name.contains(flt.entity_name, autoescape=True))
    if flt.status is not None:
        conditions.append(AuditLog.operation_status == flt.status.value)
    if flt.date_from is not None:
        conditions.append(AuditLog.created_at >= flt.date_from)
    if flt.date_to is not None:
        conditions.append(AuditLog.created_at <= flt.date_to)
    return conditions


async def list_entries(
    db: AsyncSession,
    tenant_key: str,
    flt: AuditLogFilter | None = None,
) -> list[AuditLogEntry]:
    """Filtered, ordered, paginated listing. Defaults to newest first."""
    flt = flt or AuditLogFilter()
    column = _SORT_COLUMNS[flt.order_by]
    if flt.order_dir is SortDirection.ASC:
        ordering = (column.asc(), AuditLog.id.asc())
    else:
        ordering = (column.desc(), AuditLog.id.desc())

    result = await db.execute(
        select(AuditLog)
        .where(*_filter_conditions(tenant_key, flt))
        .order_by(*ordering)
        .limit(flt.limit)
        .offset(flt.offset)
    )
    return [AuditLogEntry.model_validate(row) for row in result.scalars().all()]


async def count_entries(db: AsyncSession, tenant_key: str, flt: AuditLogFilter | None = None) -> int:
    """Total matching entries, ignoring pagination."""
    flt = flt or AuditLogFilter()
    result = await db.execute(
        select(func.count(AuditLog.id)).where(*_filter_conditions(tenant_key, flt))
    )
    return result.scalar() or 0


async def search_entries(
    db: AsyncSession,
    tenant_key: str,
    query: str,
    flt: AuditLogFilter | None = None,
) -> list[AuditLogEntry]:
    """Case-insensitive substring match on search text, newest first.

    Only the operation type and status of `flt` apply, plus its pagination.
    """
    flt = flt or AuditLogFilter()
    conditions: list[ColumnElement[bool]] = [
        AuditLog.tenant_key == tenant_key,
        AuditLog.search_text.contains(query.strip().lower(), autoescape=True),
    ]
    if flt.operation_type is not None:
        conditions.append(AuditLog.operation_type == flt.operation_type.value)
    if flt.status is not None:
        conditions.append(AuditLog.operation_status == flt.status.value)

    result = await db.execute(
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(flt.limit)
        .offset(flt.offset)
    )
    return [AuditLogEntry.model_validate(row) for row in result.scalars().all()]


async def list_entity_history(db: AsyncSession, tenant_key: str, entity_name: str) -> list[AuditLogEntry]:
    """Every entry for one template (exact name), newest first."""
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.tenant_key == tenant_key, AuditLog.entity_name == entity_name)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    )
    return [AuditLogEntry.model_validate(row) for row in result.scalars().all()]


async def get_stats(db: AsyncSession, tenant_key: str) -> AuditStats:
    """Totals per operation, oldest entry, and an approximate storage size."""
    result = await db.execute(
        select(AuditLog.operation_type, func.count(AuditLog.id))
        .where(AuditLog.tenant_key == tenant_key)
        .group_by(AuditLog.operation_type)
    )
    by_operation: dict[str, Any] = {op.value: 0 for op in OperationType}
    for operation_type, n in result.all():
        by_operation[operation_type] = n
    total = sum(by_operation.values())

    result = await db.execute(
        select(func.min(AuditLog.created_at)).where(AuditLog.tenant_key == tenant_key)
    )
    oldest = as_utc(result.scalar())

    return AuditStats(
        total_logs=total,
        by_operation=by_operation,
        oldest_entry=oldest,
        storage_size_mb=round(total * _AVG_ENTRY_KB / 1024, 2),
    )

