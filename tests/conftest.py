"""Pytest fixtures. Use asyncio for async tests; no live database is needed."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Run every test without settings from the caller's env or a stray .env file."""
    for var in ("DATABASE_URL", "IF_NOT_EXISTS", "CONNECT_TIMEOUT", "DEBUG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


class FakeConnection:
    """
    Stand-in for asyncpg.Connection that records statements.

    provisioned=True behaves like a database where the catalog was already
    applied: unguarded CREATE TABLE / CREATE INDEX raise DuplicateTableError and
    CREATE POLICY raises DuplicateObjectError, as PostgreSQL does.
    """

    def __init__(self, provisioned: bool = False, fail_on: dict[str, Exception] | None = None):
        self.provisioned = provisioned
        self.fail_on = fail_on or {}
        self.statements: list[str] = []
        self.close = AsyncMock()
        self.terminate = MagicMock()

    async def execute(self, sql: str) -> str:
        self.statements.append(sql)
        for needle, exc in self.fail_on.items():
            if needle in sql:
                raise exc
        if self.provisioned:
            if sql.startswith(("create table ", "create index ")) and "if not exists" not in sql:
                raise asyncpg.exceptions.DuplicateTableError("relation already exists")
            if sql.startswith("create policy "):
                raise asyncpg.exceptions.DuplicateObjectError("policy already exists")
        return "OK"


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def provisioned_conn() -> FakeConnection:
    return FakeConnection(provisioned=True)


@pytest.fixture
def make_conn() -> type[FakeConnection]:
    """Factory for connections with custom failures, e.g. make_conn(fail_on={...})."""
    return FakeConnection
