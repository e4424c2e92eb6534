import logging
from typing import Optional

from recipeshare.core.config import Settings, settings as default_settings
from recipeshare.core.exceptions import DatabaseException

from .backend_base import DatabaseBackend
from .db_core import Database

logger = logging.getLogger(__name__)


def get_backend(config: Optional[Settings] = None) -> DatabaseBackend:
    """Build the storage backend named by db_backend"""
    config = config or default_settings
    backend_name = config.db_backend.lower()

    if backend_name == "sqlite":
        from .sqlite_backend import SQLiteBackend

        return SQLiteBackend(config.db_path, timeout=config.sqlite_timeout)

    if backend_name in ("postgres", "postgresql"):
        from .postgres_backend import PostgresBackend

        logger.info(f"Creating PostgreSQL connection to {config.db_host}/{config.db_name}")
        return PostgresBackend(
            {
                "host": config.db_host,
                "port": config.db_port,
                "dbname": config.db_name,
                "user": config.db_user,
                "password": config.db_password,
            },
            min_connections=config.db_pool_min,
            max_connections=config.db_pool_max,
        )

    raise DatabaseException(
        "Unsupported database backend", detail=f"db_backend={config.db_backend!r}"
    )


def create_database(config: Optional[Settings] = None) -> Database:
    """Create a Database on the configured backend, creating the schema if asked to"""
    config = config or default_settings
    try:
        db = Database(get_backend(config))
        if config.auto_create_schema:
            db.initialize_schema()
        logger.info("Database connection created successfully")
        return db
    except Exception as e:
        logger.error(f"Failed to create database connection: {str(e)}", exc_info=True)
        raise
