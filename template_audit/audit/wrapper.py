"""Audited template client — transparent audit logging around template mutations.

Wraps any client with async `create`, `update`, `delete` and `get`. For each
mutation:

1. update/delete: snapshot the current template (bounded by a timeout;
   on failure proceed without a before state)
2. perform the real mutation; its errors propagate untouched
3. return the result to the caller
4. record the audit entry in a background task

The mutation and its audit entry are not transactional: a crash between
steps 3 and 4 leaves a mutation without an entry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, Protocol

from template_audit.audit.recorder import AuditRecorder
from template_audit.config import settings
from template_audit.schemas.snapshot import TemplateSnapshot

logger = logging.getLogger(__name__)

Template = dict[str, Any]


class TemplateClient(Protocol):
    """The email provider's template operations, as consumed here."""

    async def create(self, name: str, fields: dict[str, Any]) -> Template: ...

    async def update(self, name: str, fields: dict[str, Any]) -> Template: ...

    async def delete(self, name: str) -> Template: ...

    async def get(self, name: str) -> Template: ...


class AuditedTemplateClient:
    """Per-tenant decorator that records every template mutation."""

    def __init__(
        self,
        client: TemplateClient,
        recorder: AuditRecorder,
        tenant_key: str,
        operator_identifier: str | None = None,
        before_fetch_timeout: float | None = None,
    ) -> None:
        self._client = client
        self._recorder = recorder
        self._tenant_key = tenant_key
        self.operator_identifier = operator_identifier
        self._timeout = (
            settings.audit.before_fetch_timeout if before_fetch_timeout is None else before_fetch_timeout
        )
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def tenant_key(self) -> str:
        return self._tenant_key

    # ── Pass-through (not audited) ───────────────────────────────────

    async def get(self, name: str) -> Template:
        return await self._client.get(name)

    # ── Audited mutations ────────────────────────────────────────────

    async def create(self, name: str, fields: dict[str, Any]) -> Template:
        result = await self._client.create(name, fields)
        self._dispatch(self._record_create(result), f"create {name}")
        return result

    async def update(self, name: str, fields: dict[str, Any]) -> Template:
        before = await self._fetch_before(name)
        result = await self._client.update(name, fields)
        self._dispatch(self._record_update(name, before, result), f"update {name}")
        return result

    async def delete(self, name: str) -> Template:
        before = await self._fetch_before(name)
        result = await self._client.delete(name)
        self._dispatch(self._record_delete(name, before), f"delete {name}")
        return result

    async def drain(self) -> None:
        """Wait for in-flight audit tasks. Call at shutdown."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ── Internals ────────────────────────────────────────────────────

    async def _fetch_before(self, name: str) -> TemplateSnapshot | None:
        """Best-effort snapshot of the template before it changes."""
        try:
            current = await asyncio.wait_for(self._client.get(name), timeout=self._timeout)
            return TemplateSnapshot.from_provider(current)
        except TimeoutError:
            logger.warning(
                "Timed out after %.2fs fetching template before state for %s",
                self._timeout,
                name,
            )
            return None
        except Exception as exc:
            logger.warning("Failed to fetch template before state for %s: %s", name, exc)
            return None

    def _dispatch(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        """Run `coro` detached; its failures never reach the caller."""
        task = asyncio.create_task(self._guarded(coro, label))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _guarded(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Audit logging failed for template %s", label)

    async def _record_create(self, result: Template) -> None:
        await self._recorder.record_create(
            self._tenant_key,
            TemplateSnapshot.from_provider(result),
            self.operator_identifier,
        )

    async def _record_update(self, name: str, before: TemplateSnapshot | None, result: Template) -> None:
        if before is None:
            logger.warning("Skipping audit entry for update of %s: no before state", name)
            return
        await self._recorder.record_update(
            self._tenant_key,
            before,
            TemplateSnapshot.from_provider(result),
            self.operator_identifier,
        )

    async def _record_delete(self, name: str, before: TemplateSnapshot | None) -> None:
        if before is None:
            logger.warning("Skipping audit entry for delete of %s: no before state", name)
            return
        await self._recorder.record_delete(self._tenant_key, before, self.operator_identifier)
