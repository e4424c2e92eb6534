from .db_core import Database
from .database import create_database, get_backend
from .backend_base import DatabaseBackend
from .sqlite_backend import SQLiteBackend
from .grant_store import ShareGrantStore
from .tag_catalog import TagCatalog
# Note: postgres_backend imported lazily to avoid requiring a PostgreSQL server for SQLite use

__all__ = [
    "Database",
    "create_database",
    "get_backend",
    "DatabaseBackend",
    "SQLiteBackend",
    "ShareGrantStore",
    "TagCatalog",
]
