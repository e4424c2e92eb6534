from recipeshare.cache.queries import SharedRecipeQueries
from recipeshare.cache.refresh import RefreshCoordinator
from recipeshare.core.database import get_services
from recipeshare.db.db_core import Database
from recipeshare.db.grant_store import ShareGrantStore
from recipeshare.db.tag_catalog import TagCatalog


def get_db() -> Database:
    """FastAPI dependency for database access"""
    return get_services().db


def get_grant_store() -> ShareGrantStore:
    return get_services().grants


def get_tag_catalog() -> TagCatalog:
    return get_services().db.tags


def get_refresh_coordinator() -> RefreshCoordinator:
    return get_services().coordinator


def get_shared_queries() -> SharedRecipeQueries:
    return get_services().queries
