"""Audit administration API — FastAPI router.

Query and search the audit trail, record bulk operations, manage per-tenant
settings, run retention cleanup, and inspect restorable states. Every route is
scoped to the tenant resolved by get_tenant_key; an id owned by another tenant
answers 404 exactly like a missing one.

Apart from POST /log, which goes through the never-raising recorder, these are
explicit user requests: storage errors propagate and surface as 500s.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from template_audit.admin.auth import get_tenant_key
from template_audit.audit.diff import summarize
from template_audit.audit.errors import EntryNotFoundError, NothingToRestoreError
from template_audit.audit.log_store import (
    count_entries,
    get_entry,
    get_stats,
    list_entity_history,
    list_entries,
    search_entries,
)
from template_audit.audit.recorder import NOT_RECORDED, AuditRecorder
from template_audit.audit.restore import prepare_restore
from template_audit.audit.retention import cleanup, clear_all
from template_audit.audit.settings_store import get_settings, is_enabled, update_settings
from template_audit.db.engine import get_session
from template_audit.models.enums import OperationStatus, OperationType
from template_audit.schemas.audit import (
    AuditLogFilter,
    AuditSettingsUpdate,
    BulkLogRequest,
    CleanupRequest,
    SearchRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audit", tags=["audit"])


def _not_found(entry_id: int) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Audit log {entry_id} not found")


def get_recorder() -> AuditRecorder:
    """FastAPI dependency — the recorder behind POST /log."""
    return AuditRecorder()


# ── Logs ─────────────────────────────────────────────────────────────


@router.get("/logs")
async def list_logs(
    operation_type: OperationType | None = Query(None),
    entity_name: str | None = Query(None),
    status_: OperationStatus | None = Query(None, alias="status"),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    order_by: str = Query("created_at"),
    order_dir: str = Query("desc"),
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """Filtered, paginated audit entries plus the unpaginated total."""
    params: dict[str, Any] = {
        "operation_type": operation_type,
        "entity_name": entity_name or None,
        "status": status_,
        "date_from": date_from,
        "date_to": date_to,
        "offset": offset,
        "order_by": order_by,
        "order_dir": order_dir,
    }
    if limit is not None:
        params["limit"] = limit
    try:
        flt = AuditLogFilter(**params)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc

    logs = await list_entries(db, tenant_key, flt)
    total = await count_entries(db, tenant_key, flt)
    return {"success": True, "logs": logs, "total_count": total, "filter": flt}


@router.post("/logs/search")
async def search_logs(
    body: SearchRequest,
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """Free-text search over entity name, slug, labels and operation fields."""
    if not body.query.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query parameter is required")

    logs = await search_entries(db, tenant_key, body.query, body.filter)
    return {"success": True, "query": body.query, "logs": logs, "count": len(logs)}


@router.get("/logs/{entry_id}")
async def get_log(
    entry_id: int,
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """One entry, with a one-line summary of its changes."""
    entry = await get_entry(db, tenant_key, entry_id)
    if entry is None:
        raise _not_found(entry_id)
    summary = summarize(entry.changes) if entry.changes is not None else None
    return {"success": True, "log": entry, "summary": summary}


@router.post("/logs/{entry_id}/restore/prepare")
async def prepare_log_restore(
    entry_id: int,
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """The template state a restore from this entry would apply."""
    try:
        snapshot = await prepare_restore(db, tenant_key, entry_id)
    except EntryNotFoundError as exc:
        raise _not_found(entry_id) from exc
    except NothingToRestoreError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"success": True, "template_state": snapshot}


@router.get("/entities/{entity_name}/history")
async def entity_history(
    entity_name: str,
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """Every entry for one template, newest first."""
    logs = await list_entity_history(db, tenant_key, entity_name)
    return {"success": True, "entity_name": entity_name, "logs": logs}


# ── Bulk recording ───────────────────────────────────────────────────


@router.post("/log")
async def record_bulk_log(
    body: BulkLogRequest,
    recorder: AuditRecorder = Depends(get_recorder),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """Record one aggregate entry for a finished batch such as an import.

    Inconsistent counts are rejected with 422 by the body model. `log_id` is
    null when auditing is disabled for the tenant or the write failed.
    """
    log_id = await recorder.record_bulk(
        tenant_key,
        body.operation_type,
        body.total_count,
        body.success_count,
        body.failure_count,
        body.details,
        body.operator_identifier,
    )
    return {"success": True, "log_id": log_id, "recorded": log_id is not NOT_RECORDED}


# ── Settings ─────────────────────────────────────────────────────────


@router.get("/settings")
async def read_settings(
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    current = await get_settings(db, tenant_key)
    return {"success": True, "settings": current}


@router.put("/settings")
async def write_settings(
    body: AuditSettingsUpdate,
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """Partial update: only keys present in the body change."""
    updated = await update_settings(db, tenant_key, body)
    return {"success": True, "settings": updated}


@router.head("/settings")
async def settings_status(
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> Response:
    """200 when auditing is enabled, 204 otherwise; X-Audit-Enabled mirrors it."""
    enabled = await is_enabled(db, tenant_key)
    return Response(
        status_code=status.HTTP_200_OK if enabled else status.HTTP_204_NO_CONTENT,
        headers={"X-Audit-Enabled": "1" if enabled else "0"},
    )


# ── Retention ────────────────────────────────────────────────────────


@router.post("/cleanup")
async def run_cleanup(
    body: CleanupRequest | None = Body(None),
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    """Retention cleanup, or a full wipe when the body says `clear_all: true`."""
    if body is not None and body.clear_all:
        await clear_all(db, tenant_key)
        return {"success": True, "message": "All audit logs cleared", "deleted_count": "all"}

    current = await get_settings(db, tenant_key)
    if current.keeps_forever:
        return {
            "success": True,
            "message": "Retention policy set to forever, no cleanup needed",
            "deleted_count": 0,
        }

    deleted = await cleanup(db, tenant_key)
    return {
        "success": True,
        "message": f"Cleaned up logs older than {current.retention_days} days",
        "deleted_count": deleted,
        "retention_days": current.retention_days,
    }


# ── Statistics ───────────────────────────────────────────────────────


@router.get("/stats")
async def stats(
    db: AsyncSession = Depends(get_session),
    tenant_key: str = Depends(get_tenant_key),
) -> dict[str, Any]:
    return {"success": True, "stats": await get_stats(db, tenant_key)}
