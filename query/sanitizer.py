"""
Input Sanitizer

Two tiers of protection for everything that reaches generated SQL:
- Identifiers (column names) cannot be bound as parameters, so they must pass
  validate_identifier() before being quoted into the SQL text.
- Values are always bound as asyncpg positional parameters ($1, $2, ...).

Free-text search input is additionally normalized by clean_search_term().
"""

import re

MAX_FIELD_LENGTH = 100

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Metacharacters and comment openers that never belong in a column name
INJECTION_PATTERNS = (";", "--", "/*", "*/", "'", '"', "\\")

_HYPHEN_RUN_RE = re.compile(r"-{2,}")


def clean_search_term(value: str, max_length: int = MAX_FIELD_LENGTH) -> str:
    """
    Normalize a free-text search term.

    - keeps letters, digits, spaces and hyphens only
    - collapses runs of hyphens ("--" opens a SQL comment) and whitespace
    - truncates to max_length characters

    Returns an empty string when nothing usable is left.
    """
    if not value:
        return ""
    kept = "".join(c for c in str(value).strip() if c.isalnum() or c == " " or c == "-")
    kept = _HYPHEN_RUN_RE.sub("-", kept)
    normalized = " ".join(kept.split())[:max_length].strip()
    if not any(c.isalnum() for c in normalized):
        return ""
    return normalized


def validate_identifier(name: str) -> bool:
    """Check that a column name is safe to interpolate into SQL text."""
    if not isinstance(name, str) or not name:
        return False
    if len(name) > MAX_IDENTIFIER_LENGTH:
        return False
    if any(pattern in name for pattern in INJECTION_PATTERNS):
        return False
    return bool(_IDENTIFIER_RE.fullmatch(name))


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling any embedded quote."""
    return '"' + name.replace('"', '""') + '"'
