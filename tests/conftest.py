"""
PyTest configuration and shared fixtures for Recipe Share tests
"""

import os
import sys
from typing import Optional

import pytest
from fastapi.testclient import TestClient

# Add project root to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from recipeshare.cache.queries import SharedRecipeQueries
from recipeshare.cache.refresh import RefreshCoordinator
from recipeshare.db.db_core import Database
from recipeshare.db.grant_store import ShareGrantStore
from recipeshare.db.sqlite_backend import SQLiteBackend
from recipeshare.models.entities import Requester

ALICE = Requester(id="alice-id", email="alice@example.com")
BOB = Requester(id="bob-id", email="bob@example.com")
CAROL = Requester(id="carol-id", email="carol@example.com")


@pytest.fixture(scope="function")
def db_path(tmp_path):
    """Path of a fresh SQLite database file for one test"""
    return str(tmp_path / "test_recipeshare.db")


@pytest.fixture(scope="function")
def db(db_path):
    """Database with the schema created and nothing in it"""
    database = Database(SQLiteBackend(db_path, timeout=10.0))
    database.initialize_schema()
    yield database
    database.backend.close()


@pytest.fixture(scope="function")
def grant_store(db):
    return ShareGrantStore(db)


@pytest.fixture(scope="function")
def tag_catalog(db):
    return db.tags


@pytest.fixture(scope="function")
def coordinator(db):
    """Refresh coordinator listening to db commits, with an initial snapshot built"""
    refresh_coordinator = RefreshCoordinator(db)
    refresh_coordinator.attach()
    refresh_coordinator.refresh()
    yield refresh_coordinator
    refresh_coordinator.detach()


@pytest.fixture(scope="function")
def queries(db, coordinator, grant_store):
    return SharedRecipeQueries(
        db,
        coordinator.projection,
        grant_store,
        default_page_size=12,
        max_page_size=100,
        live_access_check=True,
    )


@pytest.fixture(scope="function")
def make_recipe(db):
    """Factory creating recipes with sensible defaults"""

    def _make_recipe(owner: Requester = ALICE, title: str = "Pancakes", **fields):
        return db.create_recipe(owner.id, title, **fields)

    return _make_recipe


@pytest.fixture(scope="function")
def app_services(db):
    """Process-wide services wired to the test database"""
    from recipeshare.core.database import Services, set_services

    services = Services(db)
    services.warm_up()
    set_services(services)
    yield services
    services.coordinator.detach()
    set_services(None)


@pytest.fixture(scope="function")
def test_client_with_app(app_services):
    """Test client on the test database - returns both client and app"""
    from recipeshare.main import app

    # Clear any existing dependency overrides
    app.dependency_overrides.clear()
    client = TestClient(app)
    yield client, app
    # Clean up after test
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def login(test_client_with_app):
    """Return a function that authenticates the test client as a given user"""
    from recipeshare.dependencies.auth import UserInfo, require_authentication

    client, app = test_client_with_app

    def _login(requester: Requester, groups: Optional[list] = None, email_verified: bool = True):
        user_info = UserInfo(
            user_id=requester.id,
            email=requester.email,
            email_verified=email_verified,
            groups=groups or [],
        )

        # Override the dependency
        def override_require_authentication():
            return user_info

        app.dependency_overrides[require_authentication] = override_require_authentication
        return client

    return _login
