"""Restore a template to a state captured in the audit log.

For update and delete entries the state before the operation is restored;
for create and restore entries (which have no before state) the recorded
result is re-applied. Restore is an explicit user action, so lookup and
provider errors propagate. Only the follow-up `restore` audit entry is
advisory.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from template_audit.audit.errors import EntryNotFoundError, NothingToRestoreError
from template_audit.audit.log_store import get_entry
from template_audit.audit.recorder import AuditRecorder
from template_audit.audit.wrapper import Template, TemplateClient
from template_audit.models.enums import OperationType
from template_audit.schemas.audit import AuditLogEntry
from template_audit.schemas.snapshot import TemplateSnapshot

logger = logging.getLogger(__name__)


def _restorable_state(entry: AuditLogEntry) -> TemplateSnapshot:
    snapshot = entry.state_before or entry.state_after
    if snapshot is None:
        raise NothingToRestoreError(entry.id)
    return snapshot


async def prepare_restore(db: AsyncSession, tenant_key: str, entry_id: int) -> TemplateSnapshot:
    """Return the snapshot that restoring entry `entry_id` would apply."""
    entry = await get_entry(db, tenant_key, entry_id)
    if entry is None:
        raise EntryNotFoundError(entry_id)
    return _restorable_state(entry)


async def restore(
    db: AsyncSession,
    tenant_key: str,
    entry_id: int,
    client: TemplateClient,
    recorder: AuditRecorder,
    operator_identifier: str | None = None,
) -> Template:
    """Re-apply a logged snapshot through the provider client.

    A template deleted by the logged operation is re-created; any other
    template is updated in place. `client` must be the unaudited client:
    the only entry written is the `restore` one.
    """
    entry = await get_entry(db, tenant_key, entry_id)
    if entry is None:
        raise EntryNotFoundError(entry_id)
    snapshot = _restorable_state(entry)

    fields = snapshot.to_provider_fields()
    if entry.operation_type is OperationType.DELETE:
        result = await client.create(snapshot.name, fields)
    else:
        result = await client.update(snapshot.name, fields)
    logger.info("Restored template %s from audit entry %d", snapshot.name, entry_id)

    try:
        restored = TemplateSnapshot.from_provider(result)
    except Exception:
        logger.exception("Could not snapshot restored template %s", snapshot.name)
        return result

    await recorder.record_restore(tenant_key, entry_id, restored, operator_identifier)
    return result
