"""
Pytest configuration and shared fixtures for the query engine tests

APPROACH: No live database
- Query construction is pure, so most tests assert on SQL text and binds
- Handler tests use FakeDatabase, which records every call and returns canned rows
"""

import pytest
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
import sys

from pydantic import BaseModel, Field

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from query.columns import ColumnAllowlist


ENV_VARS = (
    "APP_ENV",
    "PAGINATION_MIN_PAGE_SIZE",
    "PAGINATION_MAX_PAGE_SIZE",
    "PAGINATION_SORT_COLUMN",
    "PAGINATION_SORT_DIRECTION",
    "PAGINATION_SEARCH_COLUMNS",
    "PAGINATION_DATE_COLUMN",
    "PAGINATION_INCLUDE_TOTALS",
    "QUERY_STRICT_MODE",
)


class User(BaseModel):
    id: int = 0
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    confirmed: bool = False
    created_at: Optional[datetime] = None


class Document(BaseModel):
    """Record shape that (wrongly) exposes PostgreSQL internals."""
    id: int = 0
    name: str = ""
    description: str = ""
    pg_authid: str = ""
    ctid: str = ""
    created_at: Optional[datetime] = None
    internal_notes: str = Field(default="", exclude=True)


class FakeDatabase:
    """
    Stand-in for DatabaseConnection.

    Records (sql, args) for every call; fetch() returns `rows`, fetchval()
    returns `total`.
    """

    def __init__(self, rows: Optional[list[dict[str, Any]]] = None, total: Any = 0):
        self.rows = rows or []
        self.total = total
        self.fetch_calls: list[tuple[str, tuple]] = []
        self.fetchval_calls: list[tuple[str, tuple]] = []

    async def fetch(self, query: str, *args):
        self.fetch_calls.append((query, args))
        return self.rows

    async def fetchval(self, query: str, *args):
        self.fetchval_calls.append((query, args))
        return self.total


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Each test starts with no pagination env overrides and a fresh config."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_ENV", "test")

    from handlers import query_handlers
    query_handlers.set_pagination_config(None)
    yield
    query_handlers.set_pagination_config(None)


@pytest.fixture
def user_allowlist():
    return ColumnAllowlist.from_model(User)


@pytest.fixture
def document_allowlist():
    return ColumnAllowlist.from_model(Document)


@pytest.fixture
def fake_db():
    return FakeDatabase()
