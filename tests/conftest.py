"""Shared fixtures: a throwaway SQLite database and a fake template provider."""

from __future__ import annotations

import os

# Must be set before template_audit.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from collections.abc import AsyncGenerator  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from template_audit.models import Base  # noqa: E402

TENANT_A = "a" * 64
TENANT_B = "b" * 64


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed SQLite so concurrent sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def tenant_a() -> str:
    return TENANT_A


@pytest.fixture
def tenant_b() -> str:
    return TENANT_B


class FakeTemplateClient:
    """In-memory stand-in for the email provider's template API."""

    def __init__(self) -> None:
        self.templates: dict[str, dict[str, Any]] = {}
        self.get_calls: list[str] = []
        self._clock = 0

    def _tick(self) -> str:
        self._clock += 1
        return f"2026-10-18 10:00:{self._clock:02d}"

    async def get(self, name: str) -> dict[str, Any]:
        self.get_calls.append(name)
        if name not in self.templates:
            raise LookupError(f"No such template: {name}")
        return dict(self.templates[name])

    async def create(self, name: str, fields: dict[str, Any]) -> dict[str, Any]:
        now = self._tick()
        template = {
            "slug": name.lower().replace(" ", "-"),
            "name": name,
            "labels": [],
            "code": "",
            "subject": "",
            "from_email": "",
            "from_name": "",
            "text": "",
            "publish_name": name,
            "publish_code": None,
            "publish_subject": None,
            "publish_from_email": None,
            "publish_from_name": None,
            "publish_text": None,
            "published_at": None,
            "created_at": now,
            "updated_at": now,
            "draft_updated_at": now,
        }
        template.update(fields)
        self.templates[name] = template
        return dict(template)

    async def update(self, name: str, fields: dict[str, Any]) -> dict[str, Any]:
        if name not in self.templates:
            raise LookupError(f"No such template: {name}")
        now = self._tick()
        self.templates[name].update(fields, updated_at=now, draft_updated_at=now)
        return dict(self.templates[name])

    async def delete(self, name: str) -> dict[str, Any]:
        if name not in self.templates:
            raise LookupError(f"No such template: {name}")
        return self.templates.pop(name)


@pytest.fixture
def template_client() -> FakeTemplateClient:
    return FakeTemplateClient()
