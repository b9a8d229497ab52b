"""Audit log retention enforcement.

`cleanup` deletes a tenant's entries older than its configured retention
window; a window of -1 keeps everything. Idempotent: running it twice with
nothing past the cutoff deletes zero rows. `clear_all` wipes the tenant's
log unconditionally; the confirmation for that lives in the HTTP layer.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from template_audit.audit.settings_store import get_settings
from template_audit.models.audit import AuditLog

logger = logging.getLogger(__name__)

FOREVER = -1


async def cleanup(db: AsyncSession, tenant_key: str, now: datetime | None = None) -> int:
    """Delete entries older than the tenant's retention window. Returns the count."""
    current = await get_settings(db, tenant_key)
    if current.retention_days == FOREVER:
        logger.debug("Retention is forever for tenant %s — nothing to clean", tenant_key[:8])
        return 0

    cutoff = (now or datetime.now(UTC)) - timedelta(days=current.retention_days)
    result = await db.execute(
        delete(AuditLog)
        .where(AuditLog.tenant_key == tenant_key, AuditLog.created_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount  # type: ignore[attr-defined]
    if count > 0:
        logger.info(
            "Deleted %d audit entries for tenant %s (cutoff=%s)",
            count,
            tenant_key[:8],
            cutoff.date(),
        )
    return count


async def clear_all(db: AsyncSession, tenant_key: str) -> int:
    """Delete every entry for the tenant regardless of age."""
    result = await db.execute(
        delete(AuditLog)
        .where(AuditLog.tenant_key == tenant_key)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount  # type: ignore[attr-defined]
    logger.warning("Cleared all %d audit entries for tenant %s", count, tenant_key[:8])
    return count
