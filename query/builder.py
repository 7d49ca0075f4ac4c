"""
Query Assembler

Combines a developer-authored base SELECT with the generated clauses into
the paginated SELECT and the optional COUNT query.

The base query is wrapped, never parsed:

    WITH base_query AS (<base>)
    SELECT * FROM base_query WHERE ... ORDER BY ... LIMIT $n OFFSET $m

    WITH base_query AS (<base>)
    SELECT COUNT(*) FROM base_query WHERE ...

Both queries share the WHERE bind values; LIMIT/OFFSET are bound last and
only belong to the SELECT. Identical input always yields identical SQL.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from .clauses import (
    ClauseFragment,
    SortFragment,
    UncheckedCondition,
    build_condition,
    build_date_range,
    build_filters,
    build_search,
    build_sort,
)
from .columns import ColumnAllowlist
from .params import QueryParams

logger = logging.getLogger(__name__)

BASE_QUERY_ALIAS = "base_query"


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @classmethod
    def from_params(cls, params: QueryParams) -> "Pagination":
        return cls(page=params.page, page_size=params.page_size)


@dataclass(frozen=True)
class AssembledQuery:
    """SQL text and binds ready for asyncpg."""
    select_sql: str
    params: tuple[Any, ...]
    count_sql: Optional[str]
    count_params: tuple[Any, ...]
    pagination: Pagination


class QueryAssembler:
    """Builds parameterized paginated SQL from request parameters."""

    def build_clauses(
        self,
        params: QueryParams,
        allowlist: ColumnAllowlist,
        start_index: int = 1,
        conditions: Iterable[tuple[str, str, Any]] = (),
    ) -> list[ClauseFragment]:
        """
        Run the clause builders in their fixed order (search, date range,
        filters, extra conditions), threading the placeholder counter.
        """
        fragments: list[ClauseFragment] = []
        index = start_index

        for builder in (build_search, build_date_range, build_filters):
            fragment = builder(params, allowlist, index)
            if fragment is not None:
                fragments.append(fragment)
                index = fragment.next_index

        for column, operator, value in conditions:
            fragment = build_condition(column, operator, value, allowlist, index)
            if fragment is not None:
                fragments.append(fragment)
                index = fragment.next_index

        return fragments

    def _build_where_clause(
        self,
        clauses: Sequence[ClauseFragment],
        unchecked: Sequence[UncheckedCondition],
    ) -> str:
        conditions = [clause.sql for clause in clauses if clause.sql]
        for condition in unchecked:
            if not condition.sql.strip():
                continue
            logger.warning(f"Applying UNCHECKED raw condition: {condition.sql[:120]}")
            conditions.append(f"({condition.sql})")
        return f"WHERE {' AND '.join(conditions)}" if conditions else ""

    def build(
        self,
        base_select: str,
        clauses: Sequence[ClauseFragment],
        sort_fragment: Optional[SortFragment],
        pagination: Pagination,
        include_total: bool = True,
        unchecked: Sequence[UncheckedCondition] = (),
        base_params: Sequence[Any] = (),
    ) -> AssembledQuery:
        """
        Assemble the SELECT and COUNT statements.

        Args:
            base_select: Trusted SELECT body; may use $1..$k for base_params
            clauses: Fragments from build_clauses(), placeholders numbered after base_params
            sort_fragment: ORDER BY target, or None for no ordering
            pagination: Page and page size
            include_total: Build the COUNT query
            unchecked: Raw conditions appended without any validation
            base_params: Bind values referenced by base_select

        Returns:
            AssembledQuery
        """
        base = base_select.strip().rstrip(";")
        with_clause = f"WITH {BASE_QUERY_ALIAS} AS ({base})"
        where_clause = self._build_where_clause(clauses, unchecked)

        where_params: list[Any] = list(base_params)
        for clause in clauses:
            where_params.extend(clause.params)

        next_index = len(where_params) + 1
        order_clause = f"ORDER BY {sort_fragment.sql}" if sort_fragment else ""
        limit_clause = f"LIMIT ${next_index} OFFSET ${next_index + 1}"

        select_parts = [with_clause, f"SELECT * FROM {BASE_QUERY_ALIAS}", where_clause, order_clause, limit_clause]
        select_sql = " ".join(part for part in select_parts if part)
        select_params = tuple(where_params) + (pagination.page_size, pagination.offset)

        count_sql = None
        count_params: tuple[Any, ...] = ()
        if include_total:
            count_parts = [with_clause, f"SELECT COUNT(*) FROM {BASE_QUERY_ALIAS}", where_clause]
            count_sql = " ".join(part for part in count_parts if part)
            count_params = tuple(where_params)

        return AssembledQuery(
            select_sql=select_sql,
            params=select_params,
            count_sql=count_sql,
            count_params=count_params,
            pagination=pagination,
        )

    def build_query(
        self,
        base_select: str,
        params: QueryParams,
        allowlist: ColumnAllowlist,
        include_total: bool = True,
        conditions: Iterable[tuple[str, str, Any]] = (),
        unchecked: Sequence[UncheckedCondition] = (),
        base_params: Sequence[Any] = (),
    ) -> AssembledQuery:
        """Build every clause from params and assemble the final queries."""
        clauses = self.build_clauses(
            params, allowlist, start_index=len(base_params) + 1, conditions=conditions
        )
        sort_fragment = build_sort(params, allowlist)
        return self.build(
            base_select,
            clauses,
            sort_fragment,
            Pagination.from_params(params),
            include_total=include_total,
            unchecked=unchecked,
            base_params=base_params,
        )
