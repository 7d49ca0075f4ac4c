"""
Column Allowlist

Describes which columns of a record may appear in generated SQL.

Two layers, checked in order:
1. The column must be a field of the record shape (ColumnSpec).
2. The column must not look like a PostgreSQL internal (system schema
   prefixes, system pseudo-columns), even if the record shape declares it.

Both objects are immutable once built and are shared by every request.
"""

import logging
import types
import typing
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel

from .sanitizer import validate_identifier

logger = logging.getLogger(__name__)


class ColumnType(str, Enum):
    """Value type of a column, used to coerce filter and date values"""
    TEXT = "text"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    INTEGER = "integer"
    NUMERIC = "numeric"
    UUID = "uuid"


# System schemas and catalog tables
DENYLIST_PREFIXES = (
    "pg_",
    "information_schema",
)

# System pseudo-columns present on every PostgreSQL table
DENYLIST_COLUMNS = frozenset({
    "oid",
    "tableoid",
    "xmin",
    "xmax",
    "cmin",
    "cmax",
    "ctid",
})

# Order matters: bool subclasses int, datetime subclasses date
_PYTHON_TYPE_MAP: tuple[tuple[type, ColumnType], ...] = (
    (bool, ColumnType.BOOLEAN),
    (datetime, ColumnType.TIMESTAMP),
    (date, ColumnType.TIMESTAMP),
    (int, ColumnType.INTEGER),
    (float, ColumnType.NUMERIC),
    (Decimal, ColumnType.NUMERIC),
    (UUID, ColumnType.UUID),
    (str, ColumnType.TEXT),
)


def _unwrap_optional(annotation: Any) -> Any:
    """Optional[X] / X | None -> X. Other unions are left alone."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def column_type_for_annotation(annotation: Any) -> ColumnType:
    """Map a Python type annotation to a ColumnType, TEXT when unknown."""
    annotation = _unwrap_optional(annotation)
    if typing.get_origin(annotation) is not None:
        return ColumnType.TEXT
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return ColumnType.TEXT
        for python_type, column_type in _PYTHON_TYPE_MAP:
            if issubclass(annotation, python_type):
                return column_type
    return ColumnType.TEXT


@dataclass(frozen=True)
class ColumnSpec:
    """Column name -> ColumnType for one record shape."""
    columns: Mapping[str, ColumnType]

    def __post_init__(self):
        # Freeze a private copy so the caller's dict cannot change us later
        object.__setattr__(self, "columns", types.MappingProxyType(dict(self.columns)))

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "ColumnSpec":
        """
        Build from {name: ColumnType | "text" | python type}.

        Example:
            ColumnSpec.from_fields({"id": int, "name": "text", "created_at": ColumnType.TIMESTAMP})
        """
        columns: dict[str, ColumnType] = {}
        for name, kind in fields.items():
            if isinstance(kind, ColumnType):
                columns[name] = kind
            elif isinstance(kind, str):
                columns[name] = ColumnType(kind.lower())
            else:
                columns[name] = column_type_for_annotation(kind)
        return cls(columns)

    @classmethod
    def from_model(cls, model: type[BaseModel]) -> "ColumnSpec":
        """
        Derive columns from a pydantic model.

        The serialization alias wins over the attribute name, and fields
        declared with exclude=True are not queryable.
        """
        columns: dict[str, ColumnType] = {}
        for name, info in model.model_fields.items():
            if info.exclude:
                continue
            column_name = info.serialization_alias or info.alias or name
            columns[column_name] = column_type_for_annotation(info.annotation)
        return cls(columns)

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    def names(self) -> list[str]:
        return list(self.columns)


def is_denylisted(name: str, extra: Iterable[str] = ()) -> bool:
    """Check a column name against the system identifier denylist (case-insensitive)."""
    lowered = name.lower()
    if lowered in DENYLIST_COLUMNS:
        return True
    if any(lowered.startswith(prefix) for prefix in DENYLIST_PREFIXES):
        return True
    return any(lowered == blocked.lower() for blocked in extra)


@dataclass(frozen=True)
class ColumnAllowlist:
    """
    Validates every column reference made by the clause builders.

    Usage:
        allowlist = ColumnAllowlist.from_model(User)
        allowlist.is_allowed("email")      # True
        allowlist.is_allowed("ctid")       # False
        allowlist.column_type("confirmed") # ColumnType.BOOLEAN
    """
    spec: ColumnSpec
    denylist: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "denylist", frozenset(self.denylist))

    @classmethod
    def from_model(cls, model: type[BaseModel], denylist: Iterable[str] = ()) -> "ColumnAllowlist":
        return cls(ColumnSpec.from_model(model), frozenset(denylist))

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], denylist: Iterable[str] = ()) -> "ColumnAllowlist":
        return cls(ColumnSpec.from_fields(fields), frozenset(denylist))

    def has_column(self, name: str) -> bool:
        """Is the name a field of the record shape (ignores the denylist)."""
        return name in self.spec

    def is_allowed(self, name: str) -> bool:
        if not isinstance(name, str) or not self.has_column(name):
            return False
        if not validate_identifier(name):
            return False
        return not is_denylisted(name, self.denylist)

    def column_type(self, name: str) -> Optional[ColumnType]:
        if not self.is_allowed(name):
            return None
        return self.spec.columns[name]

    def allowed_columns(self) -> list[str]:
        """Queryable columns in declaration order."""
        return [name for name in self.spec.names() if self.is_allowed(name)]
