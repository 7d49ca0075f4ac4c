"""
Tests for the paginated fetch handler

Uses FakeDatabase, so these check what is sent to the database and how the
results are wrapped, not PostgreSQL itself.
"""

from datetime import datetime, timezone

import pytest

from config import PaginationConfig
from conftest import FakeDatabase, User
from handlers import query_handlers
from handlers.query_handlers import fetch_paginated, get_pagination_config
from models import PaginatedResponse, SortDirection
from query.clauses import UncheckedCondition
from query.params import QueryDefaults
from query.validators import QueryValidationError


USER_ROWS = [
    {
        "id": 1,
        "first_name": "John",
        "last_name": "Smith",
        "email": "john@example.com",
        "confirmed": True,
        "created_at": datetime(2024, 3, 1, tzinfo=timezone.utc),
    },
    {
        "id": 2,
        "first_name": "Johnny",
        "last_name": "Walker",
        "email": "johnny@example.com",
        "confirmed": True,
        "created_at": datetime(2024, 2, 1, tzinfo=timezone.utc),
    },
]


class TestFetchPaginated:

    @pytest.mark.asyncio
    async def test_runs_count_then_select(self, user_allowlist):
        db = FakeDatabase(rows=USER_ROWS, total=42)

        result = await fetch_paginated(
            db,
            "SELECT * FROM users",
            {"search": "john", "search_columns": "first_name,last_name", "page_size": "20", "confirmed": "true"},
            user_allowlist,
        )

        [(count_sql, count_args)] = db.fetchval_calls
        [(select_sql, select_args)] = db.fetch_calls
        assert count_sql.startswith("WITH base_query AS (SELECT * FROM users) SELECT COUNT(*)")
        assert count_args == ("%john%", True)
        assert select_sql == (
            'WITH base_query AS (SELECT * FROM users) SELECT * FROM base_query '
            'WHERE ("first_name" ILIKE $1 OR "last_name" ILIKE $1) AND "confirmed" = $2 '
            'ORDER BY "created_at" DESC LIMIT $3 OFFSET $4'
        )
        assert select_args == ("%john%", True, 20, 0)

        assert isinstance(result, PaginatedResponse)
        assert result.records == USER_ROWS
        assert result.page == 1
        assert result.page_size == 20
        assert result.total == 42
        assert result.total_pages == 3

    @pytest.mark.asyncio
    async def test_rows_become_record_type(self, user_allowlist):
        db = FakeDatabase(rows=USER_ROWS, total=2)

        result = await fetch_paginated(db, "SELECT * FROM users", {}, user_allowlist, record_type=User)

        assert all(isinstance(record, User) for record in result.records)
        assert result.records[1].first_name == "Johnny"

    @pytest.mark.asyncio
    async def test_totals_disabled(self, user_allowlist):
        db = FakeDatabase(rows=USER_ROWS)

        result = await fetch_paginated(db, "SELECT * FROM users", {}, user_allowlist, include_total=False)

        assert db.fetchval_calls == []
        assert result.total is None
        envelope = result.to_envelope()
        assert "total" not in envelope
        assert "total_pages" not in envelope
        assert envelope["page"] == 1

    @pytest.mark.asyncio
    async def test_empty_result(self, user_allowlist):
        db = FakeDatabase(rows=[], total=0)

        result = await fetch_paginated(db, "SELECT * FROM users", {"page": "4"}, user_allowlist)

        assert result.records == []
        assert result.page == 4
        assert result.total == 0
        assert result.total_pages == 0
        assert db.fetch_calls[0][1] == (10, 30)

    @pytest.mark.asyncio
    async def test_null_count_is_zero(self, user_allowlist):
        db = FakeDatabase(rows=[], total=None)
        result = await fetch_paginated(db, "SELECT * FROM users", {}, user_allowlist)
        assert result.total == 0

    @pytest.mark.asyncio
    async def test_lenient_mode_drops_unknown_columns(self, user_allowlist):
        db = FakeDatabase()

        await fetch_paginated(
            db,
            "SELECT * FROM users",
            {"sort_column": "password", "password": "x"},
            user_allowlist,
            strict=False,
        )

        select_sql = db.fetch_calls[0][0]
        assert "password" not in select_sql
        assert 'ORDER BY "created_at" DESC' in select_sql

    @pytest.mark.asyncio
    async def test_strict_mode_raises_before_querying(self, user_allowlist):
        db = FakeDatabase()

        with pytest.raises(QueryValidationError) as exc_info:
            await fetch_paginated(
                db, "SELECT * FROM users", {"sort_column": "password"}, user_allowlist, strict=True
            )

        assert exc_info.value.details["errors"][0]["path"] == "sort_column"
        assert db.fetch_calls == []
        assert db.fetchval_calls == []

    @pytest.mark.asyncio
    async def test_explicit_defaults(self, user_allowlist):
        db = FakeDatabase()
        defaults = QueryDefaults(sort_column="email", sort_direction=SortDirection.ASCENDING, max_page_size=15)

        result = await fetch_paginated(
            db, "SELECT * FROM users", {"page_size": "99"}, user_allowlist, defaults=defaults
        )

        assert 'ORDER BY "email" ASC' in db.fetch_calls[0][0]
        assert result.page_size == 15

    @pytest.mark.asyncio
    async def test_conditions_unchecked_and_base_params(self, user_allowlist):
        db = FakeDatabase()

        await fetch_paginated(
            db,
            "SELECT * FROM users WHERE tenant_id = $1",
            {"confirmed": "true"},
            user_allowlist,
            conditions=[("id", ">=", "10")],
            unchecked=[UncheckedCondition("email IS NOT NULL")],
            base_params=[7],
        )

        select_sql, select_args = db.fetch_calls[0]
        assert 'WHERE "confirmed" = $2 AND "id" >= $3 AND (email IS NOT NULL)' in select_sql
        assert select_args == (7, True, 10, 10, 0)
        assert db.fetchval_calls[0][1] == (7, True, 10)

    @pytest.mark.asyncio
    async def test_database_errors_propagate(self, user_allowlist):
        class BrokenDatabase(FakeDatabase):
            async def fetch(self, query, *args):
                raise ConnectionError("connection lost")

        with pytest.raises(ConnectionError, match="connection lost"):
            await fetch_paginated(BrokenDatabase(), "SELECT * FROM users", {}, user_allowlist)


class TestConfiguration:

    @pytest.mark.asyncio
    async def test_environment_defaults(self, user_allowlist, monkeypatch):
        monkeypatch.setenv("PAGINATION_SORT_COLUMN", "last_name")
        monkeypatch.setenv("PAGINATION_SORT_DIRECTION", "asc")
        monkeypatch.setenv("PAGINATION_MAX_PAGE_SIZE", "12")
        monkeypatch.setenv("PAGINATION_INCLUDE_TOTALS", "false")
        db = FakeDatabase()

        result = await fetch_paginated(db, "SELECT * FROM users", {"page_size": "40"}, user_allowlist)

        assert 'ORDER BY "last_name" ASC' in db.fetch_calls[0][0]
        assert result.page_size == 12
        assert db.fetchval_calls == []

    @pytest.mark.asyncio
    async def test_strict_mode_from_environment(self, user_allowlist, monkeypatch):
        monkeypatch.setenv("QUERY_STRICT_MODE", "true")

        with pytest.raises(QueryValidationError):
            await fetch_paginated(FakeDatabase(), "SELECT * FROM users", {"nope": "1"}, user_allowlist)

    @pytest.mark.asyncio
    async def test_explicit_arguments_override_environment(self, user_allowlist, monkeypatch):
        monkeypatch.setenv("QUERY_STRICT_MODE", "true")
        monkeypatch.setenv("PAGINATION_INCLUDE_TOTALS", "false")
        db = FakeDatabase(total=5)

        result = await fetch_paginated(
            db, "SELECT * FROM users", {"nope": "1"}, user_allowlist, strict=False, include_total=True
        )

        assert result.total == 5

    def test_config_is_cached(self):
        assert get_pagination_config() is get_pagination_config()

    def test_set_pagination_config(self):
        config = PaginationConfig(min_page_size=5, max_page_size=5)
        query_handlers.set_pagination_config(config)
        assert get_pagination_config() is config
