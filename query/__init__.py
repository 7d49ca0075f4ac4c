"""
Paginated Query Engine

Turns untrusted request parameters into parameterized PostgreSQL.
Identifiers are allowlisted and validated; values are always bound.
"""

from .builder import AssembledQuery, Pagination, QueryAssembler
from .clauses import (
    ClauseFragment,
    FilterValue,
    SortFragment,
    UncheckedCondition,
    build_condition,
    build_date_range,
    build_filters,
    build_search,
    build_sort,
    coerce_filter_value,
)
from .columns import ColumnAllowlist, ColumnSpec, ColumnType
from .params import QueryDefaults, QueryParams, normalize
from .sanitizer import clean_search_term, quote_identifier, validate_identifier
from .validators import QueryValidationError, validate_query_params

__all__ = [
    'AssembledQuery',
    'Pagination',
    'QueryAssembler',
    'ClauseFragment',
    'FilterValue',
    'SortFragment',
    'UncheckedCondition',
    'build_condition',
    'build_date_range',
    'build_filters',
    'build_search',
    'build_sort',
    'coerce_filter_value',
    'ColumnAllowlist',
    'ColumnSpec',
    'ColumnType',
    'QueryDefaults',
    'QueryParams',
    'normalize',
    'clean_search_term',
    'quote_identifier',
    'validate_identifier',
    'QueryValidationError',
    'validate_query_params',
]
