"""
Data storage layer for report definitions and metric snapshots.

All storage uses DuckDB; the abstract backend keeps the engine independent
of the database.
"""

from functools import lru_cache

from feedback_analytics.config import get_settings

from .base import StorageBackend
from .duckdb_storage import DuckDBStorage, StorageError


@lru_cache
def get_storage() -> StorageBackend:
    """
    Get cached storage backend instance (singleton).

    Returns:
        StorageBackend implementation instance
    """
    settings = get_settings()
    return DuckDBStorage(db_path=settings.db_path)


__all__ = [
    "StorageBackend",
    "DuckDBStorage",
    "StorageError",
    "get_storage",
]
