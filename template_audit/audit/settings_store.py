"""Per-tenant audit settings.

Exactly one row per tenant. The first access for an unknown tenant creates
the default row with INSERT ... ON CONFLICT DO NOTHING, so concurrent first
reads cannot produce duplicate rows. Storage errors propagate: settings are
explicit user actions and must not fail silently.

Functions take the caller's session and flush; the caller commits.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from template_audit.config import settings
from template_audit.models.audit import AuditSettingsRecord
from template_audit.models.base import utcnow
from template_audit.schemas.audit import AuditSettings, AuditSettingsUpdate

logger = logging.getLogger(__name__)


async def _ensure_row(db: AsyncSession, tenant_key: str) -> None:
    """Atomically create the default settings row if it does not exist."""
    dialect = db.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    stmt = (
        insert(AuditSettingsRecord)
        .values(
            tenant_key=tenant_key,
            enabled=False,
            retention_days=settings.audit.default_retention_days,
            updated_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["tenant_key"])
    )
    result = await db.execute(stmt)
    if result.rowcount:  # type: ignore[attr-defined]
        logger.info("Created default audit settings for tenant %s", tenant_key[:8])


async def _load(db: AsyncSession, tenant_key: str) -> AuditSettingsRecord:
    result = await db.execute(
        select(AuditSettingsRecord)
        .where(AuditSettingsRecord.tenant_key == tenant_key)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_settings(db: AsyncSession, tenant_key: str) -> AuditSettings:
    """Return the tenant's settings, creating defaults on first access."""
    await _ensure_row(db, tenant_key)
    record = await _load(db, tenant_key)
    return AuditSettings.model_validate(record)


async def is_enabled(db: AsyncSession, tenant_key: str) -> bool:
    """Quick check used by the recorder and the HEAD status check."""
    return (await get_settings(db, tenant_key)).enabled


async def update_settings(
    db: AsyncSession,
    tenant_key: str,
    changes: AuditSettingsUpdate,
) -> AuditSettings:
    """Apply only the fields set on `changes`; always refresh updated_at."""
    await _ensure_row(db, tenant_key)

    values: dict[str, Any] = changes.model_dump(exclude_unset=True)
    values["updated_at"] = utcnow()
    await db.execute(
        update(AuditSettingsRecord)
        .where(AuditSettingsRecord.tenant_key == tenant_key)
        .values(**values)
    )
    await db.flush()

    logger.info(
        "Audit settings updated for tenant %s: %s",
        tenant_key[:8],
        sorted(k for k in values if k != "updated_at"),
    )
    record = await _load(db, tenant_key)
    return AuditSettings.model_validate(record)
