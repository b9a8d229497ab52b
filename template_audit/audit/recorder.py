"""Audit recorder — turns template operations into audit log entries.

Audit recording is advisory; the template operation it shadows is
authoritative. Every public method therefore never raises: failures are
logged and reported as NOT_RECORDED, the same result a tenant with auditing
disabled gets.

Each call opens its own session so it can run as a detached background
task, independent of the caller's transaction.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Final

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from template_audit.audit.diff import diff
from template_audit.audit.log_store import insert_entry
from template_audit.audit.settings_store import get_settings
from template_audit.db.engine import async_session_factory
from template_audit.models.enums import OperationStatus, OperationType
from template_audit.schemas.audit import BulkItemResult, NewAuditEntry
from template_audit.schemas.snapshot import TemplateSnapshot

logger = logging.getLogger(__name__)

NOT_RECORDED: Final = None


def bulk_status(success_count: int, failure_count: int) -> OperationStatus:
    """success when nothing failed, partial when something succeeded, else failure."""
    if failure_count == 0:
        return OperationStatus.SUCCESS
    if success_count > 0:
        return OperationStatus.PARTIAL
    return OperationStatus.FAILURE


class AuditRecorder:
    """Writes audit entries for a tenant when its auditing is enabled."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))

    async def record_create(
        self,
        tenant_key: str,
        after: TemplateSnapshot,
        operator_identifier: str | None = None,
    ) -> int | None:
        return await self._record(
            tenant_key,
            operator_identifier,
            operation_type=OperationType.CREATE,
            entity_slug=after.slug or None,
            entity_name=after.name,
            state_after=after,
        )

    async def record_update(
        self,
        tenant_key: str,
        before: TemplateSnapshot,
        after: TemplateSnapshot,
        operator_identifier: str | None = None,
    ) -> int | None:
        return await self._record(
            tenant_key,
            operator_identifier,
            operation_type=OperationType.UPDATE,
            entity_slug=after.slug or before.slug or None,
            entity_name=after.name,
            state_before=before,
            state_after=after,
            changes=lambda: diff(before, after),
        )

    async def record_delete(
        self,
        tenant_key: str,
        before: TemplateSnapshot,
        operator_identifier: str | None = None,
    ) -> int | None:
        return await self._record(
            tenant_key,
            operator_identifier,
            operation_type=OperationType.DELETE,
            entity_slug=before.slug or None,
            entity_name=before.name,
            state_before=before,
        )

    async def record_restore(
        self,
        tenant_key: str,
        source_entry_id: int,
        after: TemplateSnapshot,
        operator_identifier: str | None = None,
    ) -> int | None:
        """Record that a template was brought back to a state from entry `source_entry_id`."""
        return await self._record(
            tenant_key,
            operator_identifier,
            operation_type=OperationType.RESTORE,
            operation_id=f"restore-from-{source_entry_id}",
            entity_slug=after.slug or None,
            entity_name=after.name,
            state_after=after,
        )

    async def record_bulk(
        self,
        tenant_key: str,
        operation_type: OperationType,
        total_count: int,
        success_count: int,
        failure_count: int,
        details: list[BulkItemResult] | None = None,
        operator_identifier: str | None = None,
    ) -> int | None:
        """Record one aggregate entry for a bulk action such as an import.

        Failed items in `details` are kept as error details.
        """
        failures = [d.model_dump() for d in details or [] if d.status == "failure"]
        return await self._record(
            tenant_key,
            operator_identifier,
            operation_type=operation_type,
            operation_status=bulk_status(success_count, failure_count),
            operation_id=f"{operation_type.value}-{int(time.time() * 1000)}",
            entity_name=f"Bulk {operation_type.value.title()} ({total_count} templates)",
            is_bulk=True,
            total_count=total_count,
            success_count=success_count,
            failure_count=failure_count,
            error_message=f"{len(failures)} errors" if failures else None,
            error_details=failures or None,
        )

    async def _record(
        self,
        tenant_key: str,
        operator_identifier: str | None,
        changes: Callable[[], Any] | None = None,
        **fields: Any,
    ) -> int | None:
        """Check settings, build the entry, write it. Never raises."""
        operation = fields.get("operation_type")
        try:
            if not tenant_key:
                msg = "Audit entries require a tenant key"
                raise ValueError(msg)
            async with self._session_factory() as db:
                current = await get_settings(db, tenant_key)
                if not current.enabled:
                    # Keep the lazily created settings row
                    await db.commit()
                    return NOT_RECORDED

                entry = NewAuditEntry(
                    tenant_key=tenant_key,
                    operator_identifier=operator_identifier or current.operator_identifier,
                    changes=changes() if changes is not None else None,
                    **fields,
                )
                entry_id = await insert_entry(db, entry, now=self._clock())
                await db.commit()
        except Exception:
            logger.exception(
                "Failed to record audit entry: %s %s (tenant=%s)",
                getattr(operation, "value", operation),
                fields.get("entity_name"),
                (tenant_key or "")[:8],
            )
            return NOT_RECORDED

        return entry_id
