"""
Strict Validators

The clause builders drop unknown columns silently. Callers that would rather
reject the request run validate_query_params() first and get helpful error
messages listing the valid columns.
"""

from typing import Any, Optional

from .clauses import coerce_filter_value
from .columns import ColumnAllowlist, ColumnType
from .params import QueryParams


class QueryValidationError(ValueError):
    """Raised in strict mode when params reference columns the allowlist rejects."""

    def __init__(self, details: dict[str, Any]):
        self.details = details
        messages = "; ".join(err["message"] for err in details.get("errors", []))
        super().__init__(messages or "Invalid query parameters")


def _error(code: str, path: str, message: str, **extra) -> dict:
    """Build a structured validation error."""
    err = {"code": code, "path": path, "message": message}
    err.update(extra)
    return err


def validate_query_params(params: QueryParams, allowlist: ColumnAllowlist) -> Optional[dict]:
    """
    Validate every column reference in params.
    Returns error dict if invalid, None if valid.
    """
    errors = []
    valid_fields = allowlist.allowed_columns()

    # Only a client-chosen sort column is reported; build_sort drops an unusable default
    if params.sort_column != params.default_sort_column and not allowlist.is_allowed(params.sort_column):
        errors.append(_error(
            "UNKNOWN_FIELD", "sort_column",
            f"Cannot sort by unknown field '{params.sort_column}'",
            validFields=valid_fields,
        ))

    if params.search:
        text_fields = [c for c in valid_fields if allowlist.column_type(c) is ColumnType.TEXT]
        for column in params.search_columns:
            if allowlist.column_type(column) is not ColumnType.TEXT:
                errors.append(_error(
                    "UNKNOWN_FIELD", f"search_columns.{column}",
                    f"Cannot search unknown or non-text field '{column}'",
                    validFields=text_fields,
                ))

    if params.date_after is not None or params.date_before is not None:
        if allowlist.column_type(params.date_column) is not ColumnType.TIMESTAMP:
            errors.append(_error(
                "UNKNOWN_FIELD", "date_column",
                f"Cannot filter dates on unknown or non-timestamp field '{params.date_column}'",
                validFields=[c for c in valid_fields if allowlist.column_type(c) is ColumnType.TIMESTAMP],
            ))

    for column in sorted(params.filters):
        column_type = allowlist.column_type(column)
        if column_type is None:
            errors.append(_error(
                "UNKNOWN_FIELD", f"filters.{column}",
                f"Unknown filter field '{column}'",
                validFields=valid_fields,
            ))
        elif coerce_filter_value(column_type, params.filters[column]) is None:
            errors.append(_error(
                "INVALID_VALUE", f"filters.{column}",
                f"Value for '{column}' is not a valid {column_type.value}",
            ))

    if errors:
        return {"error": True, "code": "VALIDATION_ERROR", "errors": errors}

    return None
