"""Process-wide service instances.

The database, the refresh coordinator listening to it and the stores built
on top are created together on first use, so every request shares one
projection snapshot.
"""

import logging
import threading
from typing import Optional

from recipeshare.cache.queries import SharedRecipeQueries
from recipeshare.cache.refresh import RefreshCoordinator
from recipeshare.core.config import settings
from recipeshare.db.database import create_database
from recipeshare.db.db_core import Database
from recipeshare.db.grant_store import ShareGrantStore

logger = logging.getLogger(__name__)


class Services:
    def __init__(self, db: Database):
        self.db = db
        self.grants = ShareGrantStore(db)
        self.coordinator = RefreshCoordinator(db)
        self.coordinator.attach()
        self.queries = SharedRecipeQueries(
            db,
            self.coordinator.projection,
            self.grants,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            live_access_check=settings.live_access_check,
        )

    def warm_up(self) -> None:
        """Build the first snapshot so reads do not start from an empty cache"""
        self.coordinator.refresh()


_SERVICES: Optional[Services] = None
_SERVICES_LOCK = threading.Lock()


def get_services() -> Services:
    global _SERVICES

    if _SERVICES is not None:
        return _SERVICES

    with _SERVICES_LOCK:
        if _SERVICES is None:
            logger.info("Creating database and shared recipe cache")
            services = Services(create_database())
            services.warm_up()
            _SERVICES = services
    return _SERVICES


def set_services(services: Optional[Services]) -> None:
    """Replace (or clear, with None) the process-wide services"""
    global _SERVICES
    with _SERVICES_LOCK:
        _SERVICES = services


def get_database() -> Database:
    return get_services().db


def shutdown_services() -> None:
    """Stop listening for commits and close database connections"""
    global _SERVICES
    with _SERVICES_LOCK:
        current, _SERVICES = _SERVICES, None
    if current is not None:
        current.coordinator.detach()
        current.db.backend.close()
        logger.info("Closed database connections")
