"""
Paginated Query Handler

Runs a paginated fetch end to end.

Flow:
1. Normalize raw request parameters
2. (strict mode only) Validate column references
3. Build SELECT + optional COUNT SQL
4. Execute both queries
5. Map rows and return the pagination envelope
"""

import logging
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel

from config import PaginationConfig
from models import PaginatedResponse
from query.builder import QueryAssembler
from query.clauses import UncheckedCondition
from query.columns import ColumnAllowlist
from query.params import QueryDefaults, normalize
from query.validators import QueryValidationError, validate_query_params

logger = logging.getLogger(__name__)

assembler = QueryAssembler()

_pagination_config: Optional[PaginationConfig] = None


def get_pagination_config() -> PaginationConfig:
    """Get or load the pagination configuration from the environment"""
    global _pagination_config

    if _pagination_config is None:
        _pagination_config = PaginationConfig.from_environment()
    return _pagination_config


def set_pagination_config(config: Optional[PaginationConfig]):
    """Replace the active configuration; None reloads from the environment on next use"""
    global _pagination_config
    _pagination_config = config


def _map_row(row: Any, record_type: Optional[type[BaseModel]]) -> Any:
    data = dict(row)
    if record_type is None:
        return data
    return record_type.model_validate(data)


async def fetch_paginated(
    db,
    base_sql: str,
    raw_params: Optional[Mapping[str, Any]],
    allowlist: ColumnAllowlist,
    *,
    defaults: Optional[QueryDefaults] = None,
    record_type: Optional[type[BaseModel]] = None,
    include_total: Optional[bool] = None,
    strict: Optional[bool] = None,
    conditions: Sequence[tuple[str, str, Any]] = (),
    unchecked: Sequence[UncheckedCondition] = (),
    base_params: Sequence[Any] = (),
) -> PaginatedResponse:
    """
    Fetch one page of base_sql filtered by raw_params.

    Args:
        db: Anything with async fetch(sql, *args) and fetchval(sql, *args),
            normally a DatabaseConnection
        base_sql: Trusted SELECT body, wrapped as a CTE
        raw_params: Flat request parameters (page, page_size, sort_column, ...)
        allowlist: Columns of the record shape that may be queried
        defaults: Fallback columns, direction and page size bounds
            (PaginationConfig from the environment if None)
        record_type: Pydantic model each row is validated into (dicts if None)
        include_total: Run the COUNT query; totals are omitted when False
            (PAGINATION_INCLUDE_TOTALS if None)
        strict: Raise QueryValidationError instead of dropping unknown columns
            (QUERY_STRICT_MODE if None)
        conditions: Extra (column, operator, value) comparisons, allowlisted
        unchecked: UNSAFE raw SQL conditions, applied without validation
        base_params: Bind values for $1..$k placeholders inside base_sql

    Raises:
        QueryValidationError: strict mode only
        asyncpg errors from the database, unchanged
    """
    if defaults is None or include_total is None or strict is None:
        config = get_pagination_config()
        defaults = defaults or config.to_defaults()
        include_total = config.include_totals if include_total is None else include_total
        strict = config.strict if strict is None else strict

    params = normalize(raw_params, defaults)

    if strict:
        validation_error = validate_query_params(params, allowlist)
        if validation_error:
            raise QueryValidationError(validation_error)

    query = assembler.build_query(
        base_sql,
        params,
        allowlist,
        include_total=include_total,
        conditions=conditions,
        unchecked=unchecked,
        base_params=base_params,
    )

    logger.info(f"paginated query: SQL: {query.select_sql[:120]}...")

    total = None
    if query.count_sql is not None:
        total = await db.fetchval(query.count_sql, *query.count_params)
        total = int(total or 0)

    rows = await db.fetch(query.select_sql, *query.params)
    records = [_map_row(row, record_type) for row in rows]

    return PaginatedResponse.build(
        records=records,
        page=query.pagination.page,
        page_size=query.pagination.page_size,
        total=total,
    )
