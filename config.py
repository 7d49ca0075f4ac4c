"""
Configuration for the paginated query engine
Database connection settings and pagination defaults
Environment-aware configuration based on APP_ENV
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Literal
from urllib.parse import quote_plus
from pathlib import Path
from dotenv import load_dotenv

from models import SortDirection
from query.params import (
    DEFAULT_DATE_COLUMN,
    DEFAULT_MAX_PAGE_SIZE,
    DEFAULT_MIN_PAGE_SIZE,
    DEFAULT_SEARCH_COLUMNS,
    DEFAULT_SORT_COLUMN,
    QueryDefaults,
    parse_search_columns,
    parse_sort_direction,
)

logger = logging.getLogger(__name__)

# Environment modes
EnvironmentMode = Literal["development", "test", "production"]

_TRUE_VALUES = ("true", "1", "yes")


def load_app_environment(mode: Optional[str] = None) -> str:
    """
    Load environment variables from the appropriate .env file.

    Priority:
    1. Explicit 'mode' argument
    2. APP_ENV environment variable
    3. Default to 'development'

    Loads .env.{mode} if it exists.
    """
    if not mode:
        mode = os.getenv('APP_ENV', 'development')

    base_path = Path(__file__).parent
    env_file = base_path / f'.env.{mode}'

    if env_file.exists():
        logger.info(f"Loading config from {env_file}")
        # override=False lets variables already set by the host win over the file
        load_dotenv(env_file, override=False)
    else:
        logger.debug(f"No config file found for mode '{mode}' at {env_file}")

    return mode


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration"""

    host: str
    port: int
    database: str
    user: str
    password: str

    # Connection pool settings
    min_pool_size: int = 2
    max_pool_size: int = 10
    command_timeout: int = 60  # seconds

    ssl_mode: str = "require"

    @property
    def asyncpg_dsn(self) -> str:
        """Get asyncpg DSN format"""
        return (
            f"postgresql://{self.user}:{quote_plus(self.password)}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'DatabaseConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - APP_ENV: Environment mode (development, test, production)
        - DB_HOST: Database host (default: localhost)
        - DB_PORT: Database port (default: 5432)
        - DB_NAME: Database name (default: app_db)
        - DB_USER: Database user
        - DB_PASSWORD: Database password
        - DB_SSL_MODE: SSL mode (default: prefer in development, require otherwise)
        - DB_COMMAND_TIMEOUT: Per-statement timeout in seconds (default: 60)
        """
        mode = load_app_environment(mode)

        return cls(
            host=os.getenv('DB_HOST', 'localhost'),
            port=_int_from_env('DB_PORT', 5432),
            database=os.getenv('DB_NAME', 'app_db'),
            user=os.getenv('DB_USER', 'postgres'),
            password=os.getenv('DB_PASSWORD', ''),
            ssl_mode=os.getenv('DB_SSL_MODE', 'prefer' if mode == 'development' else 'require'),
            min_pool_size=_int_from_env('DB_MIN_POOL_SIZE', 2),
            max_pool_size=_int_from_env('DB_MAX_POOL_SIZE', 10),
            command_timeout=_int_from_env('DB_COMMAND_TIMEOUT', 60),
        )


@dataclass
class PaginationConfig:
    """
    Defaults applied when request parameters are missing or invalid.

    Environment Variables:
    - PAGINATION_MIN_PAGE_SIZE: Smallest page size a client can get (default: 10)
    - PAGINATION_MAX_PAGE_SIZE: Largest page size a client can get (default: 50)
    - PAGINATION_SORT_COLUMN: Fallback sort column (default: created_at)
    - PAGINATION_SORT_DIRECTION: ascending or descending (default: descending)
    - PAGINATION_SEARCH_COLUMNS: Comma-separated search columns (default: name,description)
    - PAGINATION_DATE_COLUMN: Column for date_after/date_before (default: created_at)
    - PAGINATION_INCLUDE_TOTALS: Run the COUNT query (default: true)
    - QUERY_STRICT_MODE: Reject unknown columns instead of dropping them (default: false)
    """
    min_page_size: int = DEFAULT_MIN_PAGE_SIZE
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    sort_column: str = DEFAULT_SORT_COLUMN
    sort_direction: SortDirection = SortDirection.DESCENDING
    search_columns: tuple[str, ...] = field(default_factory=lambda: DEFAULT_SEARCH_COLUMNS)
    date_column: str = DEFAULT_DATE_COLUMN
    include_totals: bool = True
    strict: bool = False

    def __post_init__(self):
        if self.min_page_size < 1:
            self.min_page_size = 1
        if self.max_page_size < self.min_page_size:
            self.max_page_size = self.min_page_size

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> "PaginationConfig":
        load_app_environment(mode)

        search_columns = DEFAULT_SEARCH_COLUMNS
        raw_columns = os.getenv("PAGINATION_SEARCH_COLUMNS")
        if raw_columns is not None:
            search_columns = parse_search_columns(raw_columns, DEFAULT_SEARCH_COLUMNS)

        return cls(
            min_page_size=_int_from_env("PAGINATION_MIN_PAGE_SIZE", DEFAULT_MIN_PAGE_SIZE),
            max_page_size=_int_from_env("PAGINATION_MAX_PAGE_SIZE", DEFAULT_MAX_PAGE_SIZE),
            sort_column=os.getenv("PAGINATION_SORT_COLUMN", DEFAULT_SORT_COLUMN).strip() or DEFAULT_SORT_COLUMN,
            sort_direction=parse_sort_direction(
                os.getenv("PAGINATION_SORT_DIRECTION"), SortDirection.DESCENDING
            ),
            search_columns=search_columns,
            date_column=os.getenv("PAGINATION_DATE_COLUMN", DEFAULT_DATE_COLUMN).strip() or DEFAULT_DATE_COLUMN,
            include_totals=_bool_from_env("PAGINATION_INCLUDE_TOTALS", True),
            strict=is_strict_query_mode(),
        )

    def to_defaults(self) -> QueryDefaults:
        """Build the QueryDefaults handed to normalize()."""
        return QueryDefaults(
            sort_column=self.sort_column,
            sort_direction=self.sort_direction,
            search_columns=tuple(self.search_columns),
            date_column=self.date_column,
            min_page_size=self.min_page_size,
            max_page_size=self.max_page_size,
        )


# Utility functions
def is_strict_query_mode() -> bool:
    """
    Check if strict column validation is enabled.

    Lenient (default): unknown columns are dropped from the generated SQL.
    Strict: unknown columns are reported back to the caller as validation errors.

    Set via QUERY_STRICT_MODE environment variable.
    """
    return _bool_from_env('QUERY_STRICT_MODE', False)
