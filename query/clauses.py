"""
Clause Builders

Each builder turns validated parameters into one SQL predicate fragment plus
its positional bind values. Values are never interpolated: every one of them
becomes an asyncpg placeholder ($1, $2, ...). The next free placeholder number
is passed in and handed back through ClauseFragment.next_index so fragments
can be chained without collisions.

Builders never raise on bad input. A column that is not allowlisted, or a
value that does not fit the column type, turns that piece into a no-op.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from models import SortDirection

from .columns import ColumnAllowlist, ColumnType
from .params import QueryParams, parse_timestamp
from .sanitizer import quote_identifier

logger = logging.getLogger(__name__)

# Operators accepted by build_condition()
CONDITION_OPERATORS = {
    "=": "=",
    "eq": "=",
    "!=": "!=",
    "<>": "!=",
    "neq": "!=",
    ">": ">",
    "gt": ">",
    ">=": ">=",
    "gte": ">=",
    "<": "<",
    "lt": "<",
    "<=": "<=",
    "lte": "<=",
    "like": "LIKE",
    "ilike": "ILIKE",
}

PATTERN_OPERATORS = {"LIKE", "ILIKE"}

_TRUE_VALUES = {"true", "t", "1", "yes", "y", "on"}
_FALSE_VALUES = {"false", "f", "0", "no", "n", "off"}

_INTEGER_RE = re.compile(r"^[+-]?\d+$")

# asyncpg encodes integer binds as int8
_INT8_MIN = -(2 ** 63)
_INT8_MAX = 2 ** 63 - 1


@dataclass(frozen=True)
class ClauseFragment:
    """A SQL predicate, its bind values, and the next free placeholder number."""
    sql: str
    params: tuple[Any, ...]
    next_index: int


@dataclass(frozen=True)
class SortFragment:
    column: str
    direction: SortDirection

    @property
    def sql(self) -> str:
        return f"{quote_identifier(self.column)} {self.direction.sql}"


@dataclass(frozen=True)
class UncheckedCondition:
    """
    UNSAFE: raw SQL appended to the WHERE clause as-is.

    Neither the column allowlist nor the identifier validation is applied.
    Only use developer-authored text here, never anything derived from
    request input. The assembler logs every unchecked condition it applies.
    """
    sql: str


@dataclass(frozen=True)
class FilterValue:
    """A filter value tagged with the column type it was coerced for."""
    kind: ColumnType
    value: Any


# ============================================================================
# Value coercion
# ============================================================================

def _coerce_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    return None


def _coerce_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
    return None


def _coerce_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, (str, datetime)):
        return parse_timestamp(value)
    return None


def _coerce_integer(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        number = int(value.strip())
    else:
        return None
    if not _INT8_MIN <= number <= _INT8_MAX:
        return None
    return number


def _coerce_numeric(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        text = str(value).strip().replace(",", ".")
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        return number
    return None


def _coerce_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            return None
    return None


_COERCERS = {
    ColumnType.TEXT: _coerce_text,
    ColumnType.BOOLEAN: _coerce_boolean,
    ColumnType.TIMESTAMP: _coerce_timestamp,
    ColumnType.INTEGER: _coerce_integer,
    ColumnType.NUMERIC: _coerce_numeric,
    ColumnType.UUID: _coerce_uuid,
}


def coerce_filter_value(column_type: ColumnType, value: Any) -> Optional[FilterValue]:
    """
    Resolve a raw scalar against the column type.

    Strings are parsed into the column type; native values must already match
    it (a bool is never accepted for a text column). Returns None on mismatch.
    """
    coerced = _COERCERS[column_type](value)
    if coerced is None:
        return None
    return FilterValue(kind=column_type, value=coerced)


# ============================================================================
# Builders
# ============================================================================

def build_search(params: QueryParams, allowlist: ColumnAllowlist, bind_index: int) -> Optional[ClauseFragment]:
    """
    Case-insensitive partial match over the requested search columns.

    Columns are OR-combined and share a single bind value:
        ("first_name" ILIKE $1 OR "last_name" ILIKE $1)
    """
    if not params.search:
        return None

    columns = []
    for column in params.search_columns:
        if allowlist.column_type(column) is ColumnType.TEXT:
            columns.append(column)
        else:
            logger.warning(f"Skipping invalid search column: {column[:63]!r}")

    if not columns:
        return None

    placeholder = f"${bind_index}"
    conditions = [f"{quote_identifier(column)} ILIKE {placeholder}" for column in columns]
    return ClauseFragment(
        sql=f"({' OR '.join(conditions)})",
        params=(f"%{params.search}%",),
        next_index=bind_index + 1,
    )


def build_date_range(params: QueryParams, allowlist: ColumnAllowlist, bind_index: int) -> Optional[ClauseFragment]:
    """
    Inclusive bounds on the date column. Each bound is optional; an inverted
    range is applied as given.
    """
    if params.date_after is None and params.date_before is None:
        return None

    column = params.date_column
    if allowlist.column_type(column) is not ColumnType.TIMESTAMP:
        logger.warning(f"Skipping invalid date column: {column[:63]!r}")
        return None

    quoted = quote_identifier(column)
    conditions = []
    values: list[Any] = []
    index = bind_index

    if params.date_after is not None:
        conditions.append(f"{quoted} >= ${index}")
        values.append(params.date_after)
        index += 1

    if params.date_before is not None:
        conditions.append(f"{quoted} <= ${index}")
        values.append(params.date_before)
        index += 1

    return ClauseFragment(sql=" AND ".join(conditions), params=tuple(values), next_index=index)


def build_filters(params: QueryParams, allowlist: ColumnAllowlist, bind_index: int) -> Optional[ClauseFragment]:
    """
    Equality filters, AND-combined. Keys are processed in sorted order so the
    same filters always produce the same SQL.
    """
    conditions = []
    values: list[Any] = []
    index = bind_index

    for column in sorted(params.filters):
        column_type = allowlist.column_type(column)
        if column_type is None:
            logger.warning(f"Skipping invalid filter column: {column[:63]!r}")
            continue

        filter_value = coerce_filter_value(column_type, params.filters[column])
        if filter_value is None:
            logger.warning(f"Skipping filter on {column!r}: value does not match column type {column_type.value}")
            continue

        conditions.append(f"{quote_identifier(column)} = ${index}")
        values.append(filter_value.value)
        index += 1

    if not conditions:
        return None

    return ClauseFragment(sql=" AND ".join(conditions), params=tuple(values), next_index=index)


def build_condition(
    column: str,
    operator: str,
    value: Any,
    allowlist: ColumnAllowlist,
    bind_index: int,
) -> Optional[ClauseFragment]:
    """
    A single comparison on an allowlisted column, e.g. ("score", ">=", "50").

    LIKE / ILIKE take the value as a pattern and only apply to text columns.
    """
    column_type = allowlist.column_type(column)
    if column_type is None:
        logger.warning(f"Skipping invalid condition column: {column[:63]!r}")
        return None

    sql_operator = CONDITION_OPERATORS.get(str(operator).strip().lower())
    if sql_operator is None:
        logger.warning(f"Skipping condition on {column!r}: unsupported operator {str(operator)[:20]!r}")
        return None

    if sql_operator in PATTERN_OPERATORS and column_type is not ColumnType.TEXT:
        logger.warning(f"Skipping condition on {column!r}: {sql_operator} needs a text column")
        return None

    filter_value = coerce_filter_value(column_type, value)
    if filter_value is None:
        logger.warning(f"Skipping condition on {column!r}: value does not match column type {column_type.value}")
        return None

    return ClauseFragment(
        sql=f"{quote_identifier(column)} {sql_operator} ${bind_index}",
        params=(filter_value.value,),
        next_index=bind_index + 1,
    )


def build_sort(params: QueryParams, allowlist: ColumnAllowlist) -> Optional[SortFragment]:
    """
    ORDER BY target: the requested column if allowlisted, otherwise the
    default column, otherwise no ordering at all.
    """
    column = params.sort_column
    if not allowlist.is_allowed(column):
        if column != params.default_sort_column:
            logger.warning(f"Skipping invalid sort column: {column[:63]!r}")
        column = params.default_sort_column
        if not allowlist.is_allowed(column):
            return None
    return SortFragment(column=column, direction=params.sort_direction)
