"""
Query Parameters

Normalizes the flat mapping of request parameters into a typed, bounded
QueryParams value. normalize() never raises: anything malformed, missing or
out of range falls back to its default so the request still gets a page.

QueryParams is immutable. The with_* methods return a modified copy, e.g.

    params = (
        QueryParams()
        .with_search("john", ["first_name", "last_name"])
        .with_pagination(1, 20)
        .with_filter("confirmed", True)
    )
"""

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Mapping, Optional, Union

from models import SortDirection

from .sanitizer import MAX_FIELD_LENGTH, clean_search_term

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_MIN_PAGE_SIZE = 10
DEFAULT_MAX_PAGE_SIZE = 50
DEFAULT_SORT_COLUMN = "created_at"
DEFAULT_DATE_COLUMN = "created_at"
DEFAULT_SEARCH_COLUMNS: tuple[str, ...] = ("name", "description")
SEARCH_COLUMN_SEPARATOR = ","

# Keys with a fixed meaning; every other key is a column filter
RESERVED_KEYS = frozenset({
    "page",
    "page_size",
    "sort_column",
    "sort_direction",
    "search",
    "search_columns",
    "date_column",
    "date_after",
    "date_before",
})

FilterScalar = Union[str, bool, int, float, datetime]

_DIRECTION_ALIASES = {
    "asc": SortDirection.ASCENDING,
    "ascending": SortDirection.ASCENDING,
    "desc": SortDirection.DESCENDING,
    "descending": SortDirection.DESCENDING,
}

_NON_DIGIT_RE = re.compile(r"\D")

# LIMIT / OFFSET are bound as int8
MAX_OFFSET = 2 ** 63 - 1


@dataclass(frozen=True)
class QueryDefaults:
    """Caller-chosen fallbacks used by normalize()."""
    sort_column: str = DEFAULT_SORT_COLUMN
    sort_direction: SortDirection = SortDirection.DESCENDING
    search_columns: tuple[str, ...] = DEFAULT_SEARCH_COLUMNS
    date_column: str = DEFAULT_DATE_COLUMN
    min_page_size: int = DEFAULT_MIN_PAGE_SIZE
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE


@dataclass(frozen=True)
class QueryParams:
    """Typed request parameters. Column names are not yet validated."""
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_MIN_PAGE_SIZE
    sort_column: str = DEFAULT_SORT_COLUMN
    sort_direction: SortDirection = SortDirection.DESCENDING
    search: Optional[str] = None
    search_columns: tuple[str, ...] = DEFAULT_SEARCH_COLUMNS
    date_column: str = DEFAULT_DATE_COLUMN
    date_after: Optional[datetime] = None
    date_before: Optional[datetime] = None
    filters: Mapping[str, FilterScalar] = field(default_factory=dict)
    default_sort_column: str = DEFAULT_SORT_COLUMN

    def with_pagination(
        self,
        page: int,
        page_size: int,
        min_page_size: int = DEFAULT_MIN_PAGE_SIZE,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    ) -> "QueryParams":
        return replace(
            self,
            page=page if _page_in_range(page, max_page_size) else DEFAULT_PAGE,
            page_size=min(max(page_size, min_page_size), max_page_size),
        )

    def with_sort(self, sort_column: str, sort_direction: SortDirection = SortDirection.DESCENDING) -> "QueryParams":
        return replace(self, sort_column=sort_column, sort_direction=sort_direction)

    def with_search(self, search: str, search_columns: Iterable[str]) -> "QueryParams":
        return replace(
            self,
            search=clean_search_term(search) or None,
            search_columns=_dedupe(search_columns),
        )

    def with_date_range(
        self,
        date_after: Optional[datetime] = None,
        date_before: Optional[datetime] = None,
        date_column: Optional[str] = None,
    ) -> "QueryParams":
        return replace(
            self,
            date_after=parse_timestamp(date_after),
            date_before=parse_timestamp(date_before),
            date_column=date_column or DEFAULT_DATE_COLUMN,
        )

    def with_filter(self, column: str, value: Optional[FilterScalar]) -> "QueryParams":
        return self.with_filters({column: value})

    def with_filters(self, filters: Mapping[str, Optional[FilterScalar]]) -> "QueryParams":
        merged = dict(self.filters)
        merged.update(normalize_filters(filters))
        return replace(self, filters=merged)


# ============================================================================
# Field parsers (never raise)
# ============================================================================

def _extract_int(value: Any) -> Optional[int]:
    """
    Best-effort integer from client input.

    Strings are trimmed; a leading '-' means "invalid", otherwise the digits are
    pulled out ("page 5" -> 5). Booleans are never numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text or text.startswith("-"):
        return None
    digits = _NON_DIGIT_RE.sub("", text)
    if not digits:
        return None
    return int(digits)


def _page_in_range(page: int, max_page_size: int) -> bool:
    """The offset of `page` must still fit an int8 at the largest page size."""
    return DEFAULT_PAGE <= page and (page - 1) * max_page_size <= MAX_OFFSET


def parse_page(value: Any, max_page_size: int = DEFAULT_MAX_PAGE_SIZE) -> int:
    number = _extract_int(value)
    if number is None or not _page_in_range(number, max_page_size):
        return DEFAULT_PAGE
    return number


def parse_page_size(
    value: Any,
    min_page_size: int = DEFAULT_MIN_PAGE_SIZE,
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
) -> int:
    number = _extract_int(value)
    if number is None:
        return min_page_size
    return min(max(number, min_page_size), max_page_size)


def parse_sort_direction(value: Any, default: SortDirection = SortDirection.DESCENDING) -> SortDirection:
    if isinstance(value, SortDirection):
        return value
    if not isinstance(value, str):
        return default
    return _DIRECTION_ALIASES.get(value.strip().lower(), default)


def _dedupe(columns: Iterable[Any]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for column in columns:
        if not isinstance(column, str):
            continue
        name = column.strip()
        if name and name not in seen:
            seen[name] = None
    return tuple(seen)


def parse_search_columns(value: Any, default: tuple[str, ...] = DEFAULT_SEARCH_COLUMNS) -> tuple[str, ...]:
    """
    "first_name, last_name" -> ("first_name", "last_name").

    Missing -> default. An explicitly empty value yields no columns, which
    turns search off.
    """
    if value is None:
        return tuple(default)
    if isinstance(value, str):
        return _dedupe(value.split(SEARCH_COLUMN_SEPARATOR))
    if isinstance(value, (list, tuple)):
        return _dedupe(value)
    return tuple(default)


def parse_search(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return clean_search_term(value) or None


def parse_column_name(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 / RFC-3339 timestamp.

    "2024-01-31" means midnight; naive values are taken as UTC.
    Returns None when the value cannot be parsed.

    The result is always timezone-aware, so date columns are expected to be
    `timestamptz`: asyncpg rejects aware values for `timestamp without time zone`.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if "T" not in text and " " not in text and len(text) == 10:
                parsed = datetime.combine(date.fromisoformat(text), time.min)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
        except ValueError:
            logger.debug(f"Ignoring unparseable timestamp: {text[:40]!r}")
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_filters(raw: Mapping[str, Any]) -> dict[str, FilterScalar]:
    """
    Keep scalar filter values, dropping blanks, oversized strings and
    non-scalars. Column names are checked later against the allowlist.
    """
    filters: dict[str, FilterScalar] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key.strip():
            continue
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
            if len(value) > MAX_FIELD_LENGTH:
                logger.warning(f"Dropping filter '{key[:40]}': value longer than {MAX_FIELD_LENGTH} characters")
                continue
        elif not isinstance(value, (bool, int, float, datetime)):
            logger.warning(f"Dropping filter '{key[:40]}': unsupported value type {type(value).__name__}")
            continue
        filters[key.strip()] = value
    return filters


def normalize(raw_params: Optional[Mapping[str, Any]], defaults: Optional[QueryDefaults] = None) -> QueryParams:
    """
    Turn raw request parameters into QueryParams.

    Args:
        raw_params: Flat mapping from the HTTP layer (query string values)
        defaults: Fallbacks for columns, direction and page size bounds

    Returns:
        QueryParams with every field within bounds.
    """
    defaults = defaults or QueryDefaults()
    raw = dict(raw_params or {})

    return QueryParams(
        page=parse_page(raw.get("page"), defaults.max_page_size),
        page_size=parse_page_size(raw.get("page_size"), defaults.min_page_size, defaults.max_page_size),
        sort_column=parse_column_name(raw.get("sort_column"), defaults.sort_column),
        sort_direction=parse_sort_direction(raw.get("sort_direction"), defaults.sort_direction),
        search=parse_search(raw.get("search")),
        search_columns=parse_search_columns(raw.get("search_columns"), defaults.search_columns),
        date_column=parse_column_name(raw.get("date_column"), defaults.date_column),
        date_after=parse_timestamp(raw.get("date_after")),
        date_before=parse_timestamp(raw.get("date_before")),
        filters=normalize_filters({k: v for k, v in raw.items() if k not in RESERVED_KEYS}),
        default_sort_column=defaults.sort_column,
    )
