"""
MATKA - Core Module
Configuration, persistence and error infrastructure.
"""

from matka.core.config import Settings, get_settings, settings
from matka.core.database import (
    Base,
    DatabaseManager,
    db_manager,
    get_database_manager,
    init_db,
    close_db,
    chunked,
)
from matka.core.exceptions import (
    MatkaError,
    RateConfigurationError,
    InvalidRequestError,
    ResultSourceError,
    BatchCommitError,
)
from matka.core.timeutils import DateWindow, ist_date_of, parse_date, utcnow

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",

    # Database
    "Base",
    "DatabaseManager",
    "db_manager",
    "get_database_manager",
    "init_db",
    "close_db",
    "chunked",

    # Errors
    "MatkaError",
    "RateConfigurationError",
    "InvalidRequestError",
    "ResultSourceError",
    "BatchCommitError",

    # Dates
    "DateWindow",
    "ist_date_of",
    "parse_date",
    "utcnow",
]
