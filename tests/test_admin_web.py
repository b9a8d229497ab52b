"""Tests for the audit administration API.

Covers:
- Tenant authentication (401 without a key, Bearer and X-API-Key accepted)
- Tenant isolation (another tenant's entry answers 404)
- Log listing, search, detail, history and restore preview
- Settings read/update and the HEAD status check
- Bulk operation recording
- Retention cleanup and statistics
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from template_audit.admin.web import get_recorder, router
from template_audit.audit.log_store import insert_entry
from template_audit.audit.recorder import AuditRecorder
from template_audit.audit.tenant import derive_tenant_key
from template_audit.db.engine import get_session
from template_audit.models import Base
from template_audit.models.enums import ChangeType, OperationType
from template_audit.schemas.audit import ChangeRecord, NewAuditEntry
from template_audit.schemas.snapshot import TemplateSnapshot

KEY_A = "md-key-tenant-a"
KEY_B = "md-key-tenant-b"
AUTH_A = {"Authorization": f"Bearer {KEY_A}"}
AUTH_B = {"X-API-Key": KEY_B}

BEFORE = TemplateSnapshot(slug="welcome", name="Welcome", subject="Hi", labels=["en"])
AFTER = BEFORE.model_copy(update={"subject": "Hello"})

# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def factory(tmp_path):
    """Session factory on a fresh SQLite file, usable from any event loop."""
    path = tmp_path / "web.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def client(factory):
    """Test client with the audit router and a real database session."""

    async def _session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    test_app = FastAPI()
    test_app.include_router(router)
    test_app.dependency_overrides[get_session] = _session
    test_app.dependency_overrides[get_recorder] = lambda: AuditRecorder(factory)
    return TestClient(test_app)


def _seed(factory, api_key, entries):
    """Insert (op, minutes_ago) entries for the tenant owning `api_key`; returns ids."""
    tenant_key = derive_tenant_key(api_key)
    now = datetime.now(UTC)

    async def _insert():
        ids = []
        async with factory() as session:
            for op, minutes_ago in entries:
                fields = {
                    "tenant_key": tenant_key,
                    "operation_type": op,
                    "entity_slug": "welcome",
                    "entity_name": "Welcome",
                }
                if op is OperationType.CREATE:
                    fields["state_after"] = BEFORE
                elif op is OperationType.UPDATE:
                    fields.update(
                        state_before=BEFORE,
                        state_after=AFTER,
                        changes=[
                            ChangeRecord(
                                field="subject",
                                old_value="Hi",
                                new_value="Hello",
                                change_type=ChangeType.MODIFIED,
                            )
                        ],
                    )
                else:
                    fields["state_before"] = AFTER
                entry = NewAuditEntry(**fields)
                ids.append(await insert_entry(session, entry, now=now - timedelta(minutes=minutes_ago)))
            await session.commit()
        return ids

    return asyncio.run(_insert())


# ── Authentication ───────────────────────────────────────────────────


class TestAuth:
    def test_no_key_401(self, client):
        resp = client.get("/api/audit/logs")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_bearer_accepted(self, client):
        assert client.get("/api/audit/logs", headers=AUTH_A).status_code == 200

    def test_api_key_header_accepted(self, client):
        assert client.get("/api/audit/logs", headers=AUTH_B).status_code == 200

    def test_both_headers_name_same_tenant(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 1)])
        via_bearer = client.get("/api/audit/logs", headers=AUTH_A).json()
        via_header = client.get("/api/audit/logs", headers={"X-API-Key": KEY_A}).json()
        assert via_bearer["total_count"] == via_header["total_count"] == 1


# ── Logs ─────────────────────────────────────────────────────────────


class TestLogs:
    def test_list_newest_first_with_total(self, client, factory):
        _seed(factory, KEY_A, [
            (OperationType.CREATE, 30),
            (OperationType.UPDATE, 20),
            (OperationType.DELETE, 10),
        ])
        resp = client.get("/api/audit/logs", params={"limit": 2}, headers=AUTH_A)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["total_count"] == 3
        assert [log["operation_type"] for log in body["logs"]] == ["delete", "update"]

    def test_filter_by_operation_type(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 30), (OperationType.UPDATE, 20)])
        body = client.get("/api/audit/logs", params={"operation_type": "update"}, headers=AUTH_A).json()
        assert [log["operation_type"] for log in body["logs"]] == ["update"]
        assert body["filter"]["operation_type"] == "update"

    def test_invalid_sort_field_422(self, client):
        resp = client.get("/api/audit/logs", params={"order_by": "tenant_key"}, headers=AUTH_A)
        assert resp.status_code == 422

    def test_tenants_do_not_see_each_other(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 1)])
        body = client.get("/api/audit/logs", headers=AUTH_B).json()
        assert body["logs"] == []
        assert body["total_count"] == 0

    def test_detail_includes_summary(self, client, factory):
        (entry_id,) = _seed(factory, KEY_A, [(OperationType.UPDATE, 1)])
        resp = client.get(f"/api/audit/logs/{entry_id}", headers=AUTH_A)
        assert resp.status_code == 200
        body = resp.json()
        assert body["log"]["id"] == entry_id
        assert body["log"]["changes"][0]["field"] == "subject"
        assert body["summary"] == "Changed: subject"

    def test_detail_other_tenant_404(self, client, factory):
        (entry_id,) = _seed(factory, KEY_A, [(OperationType.UPDATE, 1)])
        assert client.get(f"/api/audit/logs/{entry_id}", headers=AUTH_B).status_code == 404

    def test_detail_missing_404(self, client):
        assert client.get("/api/audit/logs/999", headers=AUTH_A).status_code == 404

    def test_entity_history(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 30), (OperationType.UPDATE, 20)])
        body = client.get("/api/audit/entities/Welcome/history", headers=AUTH_A).json()
        assert body["entity_name"] == "Welcome"
        assert [log["operation_type"] for log in body["logs"]] == ["update", "create"]


class TestSearch:
    def test_matches_label(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.DELETE, 1)])
        resp = client.post("/api/audit/logs/search", json={"query": "EN"}, headers=AUTH_A)
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["logs"][0]["operation_type"] == "delete"

    def test_empty_query_400(self, client):
        resp = client.post("/api/audit/logs/search", json={"query": "   "}, headers=AUTH_A)
        assert resp.status_code == 400


class TestRestorePreview:
    def test_update_entry_previews_before_state(self, client, factory):
        (entry_id,) = _seed(factory, KEY_A, [(OperationType.UPDATE, 1)])
        resp = client.post(f"/api/audit/logs/{entry_id}/restore/prepare", headers=AUTH_A)
        assert resp.status_code == 200
        state = resp.json()["template_state"]
        assert state["subject"] == "Hi"
        assert state["labels"] == ["en"]

    def test_other_tenant_404(self, client, factory):
        (entry_id,) = _seed(factory, KEY_A, [(OperationType.UPDATE, 1)])
        resp = client.post(f"/api/audit/logs/{entry_id}/restore/prepare", headers=AUTH_B)
        assert resp.status_code == 404


# ── Settings ─────────────────────────────────────────────────────────


class TestSettings:
    def test_defaults(self, client):
        body = client.get("/api/audit/settings", headers=AUTH_A).json()
        assert body["settings"]["enabled"] is False
        assert body["settings"]["retention_days"] == 30

    def test_partial_update(self, client):
        client.put("/api/audit/settings", json={"retention_days": 90}, headers=AUTH_A)
        resp = client.put("/api/audit/settings", json={"enabled": True}, headers=AUTH_A)
        assert resp.status_code == 200
        settings = client.get("/api/audit/settings", headers=AUTH_A).json()["settings"]
        assert settings["enabled"] is True
        assert settings["retention_days"] == 90

    def test_invalid_retention_422(self, client):
        resp = client.put("/api/audit/settings", json={"retention_days": 0}, headers=AUTH_A)
        assert resp.status_code == 422

    def test_retention_beyond_limit_422(self, client):
        resp = client.put("/api/audit/settings", json={"retention_days": 1_000_000}, headers=AUTH_A)
        assert resp.status_code == 422
        settings = client.get("/api/audit/settings", headers=AUTH_A).json()["settings"]
        assert settings["retention_days"] == 30
        assert client.post("/api/audit/cleanup", json={}, headers=AUTH_A).status_code == 200

    def test_head_reflects_enabled(self, client):
        disabled = client.head("/api/audit/settings", headers=AUTH_A)
        assert disabled.status_code == 204
        assert disabled.headers["X-Audit-Enabled"] == "0"

        client.put("/api/audit/settings", json={"enabled": True}, headers=AUTH_A)
        enabled = client.head("/api/audit/settings", headers=AUTH_A)
        assert enabled.status_code == 200
        assert enabled.headers["X-Audit-Enabled"] == "1"

    def test_settings_are_per_tenant(self, client):
        client.put("/api/audit/settings", json={"enabled": True}, headers=AUTH_A)
        other = client.get("/api/audit/settings", headers=AUTH_B).json()["settings"]
        assert other["enabled"] is False


# ── Bulk recording ───────────────────────────────────────────────────


class TestBulkLog:
    def test_import_recorded_when_enabled(self, client):
        client.put("/api/audit/settings", json={"enabled": True}, headers=AUTH_A)
        body = {
            "operation_type": "import",
            "total_count": 3,
            "success_count": 2,
            "failure_count": 1,
            "details": [
                {"name": "Welcome", "status": "success"},
                {"name": "Invoice", "status": "success"},
                {"name": "Broken", "status": "failure", "error": "Invalid HTML"},
            ],
        }
        resp = client.post("/api/audit/log", json=body, headers=AUTH_A)
        assert resp.status_code == 200
        result = resp.json()
        assert result["recorded"] is True
        assert isinstance(result["log_id"], int)

        log = client.get(f"/api/audit/logs/{result['log_id']}", headers=AUTH_A).json()["log"]
        assert log["operation_type"] == "import"
        assert log["operation_status"] == "partial"
        assert log["is_bulk"] is True
        assert log["entity_name"] == "Bulk Import (3 templates)"
        assert (log["total_count"], log["success_count"], log["failure_count"]) == (3, 2, 1)
        assert log["error_details"] == [{"name": "Broken", "status": "failure", "error": "Invalid HTML"}]

    def test_not_recorded_when_disabled(self, client):
        body = {"total_count": 1, "success_count": 1, "failure_count": 0}
        result = client.post("/api/audit/log", json=body, headers=AUTH_A).json()
        assert result["log_id"] is None
        assert result["recorded"] is False
        assert client.get("/api/audit/logs", headers=AUTH_A).json()["total_count"] == 0

    def test_inconsistent_counts_422(self, client):
        client.put("/api/audit/settings", json={"enabled": True}, headers=AUTH_A)
        body = {"total_count": 6, "success_count": 3, "failure_count": 2}
        resp = client.post("/api/audit/log", json=body, headers=AUTH_A)
        assert resp.status_code == 422
        assert client.get("/api/audit/logs", headers=AUTH_A).json()["total_count"] == 0

    def test_requires_key(self, client):
        body = {"total_count": 1, "success_count": 1, "failure_count": 0}
        assert client.post("/api/audit/log", json=body).status_code == 401

    def test_entry_scoped_to_caller(self, client):
        client.put("/api/audit/settings", json={"enabled": True}, headers=AUTH_A)
        body = {"total_count": 1, "success_count": 1, "failure_count": 0}
        log_id = client.post("/api/audit/log", json=body, headers=AUTH_A).json()["log_id"]
        assert client.get(f"/api/audit/logs/{log_id}", headers=AUTH_A).status_code == 200
        assert client.get(f"/api/audit/logs/{log_id}", headers=AUTH_B).status_code == 404


# ── Cleanup / stats ──────────────────────────────────────────────────


class TestCleanup:
    def test_retention_cleanup(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 60 * 24 * 40), (OperationType.UPDATE, 10)])
        resp = client.post("/api/audit/cleanup", json={}, headers=AUTH_A)
        assert resp.status_code == 200
        body = resp.json()
        assert body["deleted_count"] == 1
        assert body["retention_days"] == 30

    def test_no_body(self, client):
        resp = client.post("/api/audit/cleanup", headers=AUTH_A)
        assert resp.status_code == 200
        assert resp.json()["deleted_count"] == 0

    def test_forever_retention(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 60 * 24 * 400)])
        client.put("/api/audit/settings", json={"retention_days": -1}, headers=AUTH_A)
        body = client.post("/api/audit/cleanup", json={}, headers=AUTH_A).json()
        assert body["deleted_count"] == 0
        assert "forever" in body["message"]

    def test_clear_all(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 10), (OperationType.UPDATE, 5)])
        _seed(factory, KEY_B, [(OperationType.CREATE, 10)])
        body = client.post("/api/audit/cleanup", json={"clear_all": True}, headers=AUTH_A).json()
        assert body["deleted_count"] == "all"
        assert client.get("/api/audit/logs", headers=AUTH_A).json()["total_count"] == 0
        assert client.get("/api/audit/logs", headers=AUTH_B).json()["total_count"] == 1


class TestStats:
    def test_per_tenant_counts(self, client, factory):
        _seed(factory, KEY_A, [(OperationType.CREATE, 30), (OperationType.UPDATE, 20)])
        _seed(factory, KEY_B, [(OperationType.DELETE, 10)])
        stats = client.get("/api/audit/stats", headers=AUTH_A).json()["stats"]
        assert stats["total_logs"] == 2
        assert stats["by_operation"]["create"] == 1
        assert stats["by_operation"]["update"] == 1
        assert stats["by_operation"]["delete"] == 0
        assert stats["oldest_entry"] is not None
