"""
Tests for the response envelope
"""

import pytest
from pydantic import ValidationError

from conftest import User
from models import PaginatedResponse, SortDirection, compute_total_pages


class TestSortDirection:

    def test_sql_keywords(self):
        assert SortDirection.ASCENDING.sql == "ASC"
        assert SortDirection.DESCENDING.sql == "DESC"

    def test_values(self):
        assert SortDirection("ascending") is SortDirection.ASCENDING


class TestTotalPages:

    @pytest.mark.parametrize("total,page_size,expected", [
        (0, 10, 0),
        (1, 10, 1),
        (10, 10, 1),
        (11, 10, 2),
        (42, 20, 3),
    ])
    def test_ceiling(self, total, page_size, expected):
        assert compute_total_pages(total, page_size) == expected


class TestPaginatedResponse:

    def test_build_with_totals(self):
        response = PaginatedResponse.build(records=[{"id": 1}], page=2, page_size=10, total=25)

        assert response.total_pages == 3
        assert response.has_totals
        assert response.to_envelope() == {
            "records": [{"id": 1}],
            "page": 2,
            "page_size": 10,
            "total": 25,
            "total_pages": 3,
        }

    def test_build_without_totals(self):
        response = PaginatedResponse.build(records=[], page=1, page_size=10)

        assert response.total is None
        assert response.total_pages is None
        assert not response.has_totals
        assert response.to_envelope() == {"records": [], "page": 1, "page_size": 10}

    def test_typed_records_serialize(self):
        response = PaginatedResponse[User].build(
            records=[User(id=1, first_name="Ann", email="ann@example.com")], page=1, page_size=10, total=1
        )

        envelope = response.to_envelope()

        assert envelope["records"][0]["first_name"] == "Ann"
        assert envelope["records"][0]["created_at"] is None

    def test_page_must_be_positive(self):
        with pytest.raises(ValidationError):
            PaginatedResponse(records=[], page=0, page_size=10)
