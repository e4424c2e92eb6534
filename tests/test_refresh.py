"""
Tests for keeping the shared recipe projection in step with committed writes
"""

import sqlite3
import threading
import time

import pytest
from conftest import ALICE, BOB

from recipeshare.cache.projection import ProjectionSnapshot, RefreshMode
from recipeshare.cache.refresh import ProjectionStore, RefreshCoordinator, RefreshState
from recipeshare.core.exceptions import RefreshFailedException
from recipeshare.models.entities import EntityKind

LEGACY_PUBLIC_GRANT_SQL = (
    "INSERT INTO share_grants (recipe_id, granted_by, grantee_email, is_public, created_at) "
    "VALUES (?, ?, NULL, ?, ?)"
)


def _recipe_ids(coordinator, email):
    return {row.recipe_id for row in coordinator.projection.current().rows_for(email)}


class TestRefreshOnCommit:
    def test_initial_refresh_publishes_empty_snapshot(self, coordinator):
        snapshot = coordinator.projection.current()

        assert snapshot.version == 1
        assert len(snapshot) == 0
        assert coordinator.state == RefreshState.IDLE

    def test_grant_appears_after_commit(self, coordinator, grant_store, make_recipe):
        recipe = make_recipe()

        grant_store.create_grant(recipe.id, ALICE.id, grantee_email=BOB.email)

        assert _recipe_ids(coordinator, BOB.email) == {recipe.id}
        assert _recipe_ids(coordinator, None) == set()

    def test_revoked_grant_disappears(self, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant = grant_store.create_grant(recipe.id, ALICE.id, grantee_email=BOB.email)

        grant_store.revoke_grant(grant.id, ALICE.id)

        assert _recipe_ids(coordinator, BOB.email) == set()

    def test_deleted_recipe_disappears(self, db, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)

        db.delete_recipe(recipe.id, ALICE.id)

        assert len(coordinator.projection.current()) == 0

    def test_recipe_edit_surfaces(self, db, coordinator, grant_store, make_recipe):
        recipe = make_recipe(title="Pancakes")
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)

        db.update_recipe(recipe.id, ALICE.id, {"title": "Crepes"})

        assert [row.title for row in coordinator.projection.current().rows] == ["Crepes"]

    def test_profile_change_surfaces(self, db, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)

        db.upsert_profile(ALICE.id, email=ALICE.email, full_name="Alice Baker", is_verified=True)

        row = coordinator.projection.current().rows[0]
        assert row.author_name == "Alice Baker"
        assert row.author_verified is True

    def test_tag_links_surface(self, db, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)

        tag = db.add_recipe_tag(recipe.id, "Breakfast", ALICE.id)
        assert coordinator.projection.current().rows[0].tag_names == ("Breakfast",)

        db.remove_recipe_tag(recipe.id, tag.id, ALICE.id)
        assert coordinator.projection.current().rows[0].tag_names == ()

    def test_deleted_tag_surfaces(self, db, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)
        tag = db.add_recipe_tag(recipe.id, "Breakfast", ALICE.id)

        db.tags.delete_tag(tag.id)

        assert coordinator.projection.current().rows[0].tag_ids == ()

    def test_favorite_toggle_does_not_refresh(self, db, coordinator, make_recipe):
        recipe = make_recipe()
        before = coordinator.status().refresh_count

        db.set_favorite(recipe.id, ALICE.id, True)

        assert coordinator.status().refresh_count == before

    def test_repeat_refresh_is_idempotent(self, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)
        grant_store.create_grant(recipe.id, ALICE.id, grantee_email=BOB.email)
        first = coordinator.projection.current()

        second = coordinator.refresh()

        assert second.version == first.version + 1
        assert second.content_digest() == first.content_digest()

    def test_direct_notification_triggers_refresh(self, coordinator):
        before = coordinator.status().refresh_count

        coordinator.on_recipe_write(42)

        assert coordinator.status().refresh_count == before + 1

    def test_empty_notification_batch_is_ignored(self, coordinator):
        before = coordinator.status().refresh_count

        coordinator.on_commit([])

        assert coordinator.status().refresh_count == before

    def test_detached_coordinator_stops_listening(self, db, coordinator, make_recipe):
        coordinator.detach()
        before = coordinator.status().refresh_count

        make_recipe()

        assert coordinator.status().refresh_count == before


class TestUnitOfWork:
    def test_bulk_writes_refresh_once(self, db, coordinator, grant_store):
        before = coordinator.status().refresh_count

        with db.unit_of_work():
            for title in ("Soup", "Stew", "Salad"):
                recipe = db.create_recipe(ALICE.id, title)
                grant_store.create_grant(recipe.id, ALICE.id, is_public=True)
            # nothing is visible until the whole batch commits
            assert coordinator.status().refresh_count == before

        status = coordinator.status()
        assert status.refresh_count == before + 1
        assert len(coordinator.projection.current()) == 3

    def test_rollback_does_not_refresh(self, db, coordinator, grant_store):
        before = coordinator.status().refresh_count

        with pytest.raises(RuntimeError):
            with db.unit_of_work():
                recipe = db.create_recipe(ALICE.id, "Doomed")
                grant_store.create_grant(recipe.id, ALICE.id, is_public=True)
                raise RuntimeError("abort")

        assert coordinator.status().refresh_count == before
        assert db.get_recipe(recipe.id) is None
        assert len(coordinator.projection.current()) == 0


class TestExclusiveFallback:
    def _insert_legacy_public_grant(self, db, recipe_id):
        # Databases created before the one-public-grant index can still hold duplicates
        with db.unit_of_work():
            db.query("DROP INDEX IF EXISTS idx_share_grants_one_public")
            db.query(LEGACY_PUBLIC_GRANT_SQL, (recipe_id, ALICE.id, True, "2024-01-01T00:00:00+00:00"))
            db.notify(EntityKind.GRANT, recipe_id)

    def test_duplicate_key_falls_back_to_exclusive(self, db, coordinator, grant_store, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)
        assert coordinator.status().last_mode == RefreshMode.CONCURRENT

        self._insert_legacy_public_grant(db, recipe.id)

        status = coordinator.status()
        snapshot = coordinator.projection.current()
        assert status.exclusive_count == 1
        assert status.last_mode == RefreshMode.EXCLUSIVE
        assert status.last_error is None
        assert snapshot.mode == RefreshMode.EXCLUSIVE
        assert len(snapshot) == 2

    def test_shared_listing_still_deduplicates(self, db, coordinator, grant_store, queries, make_recipe):
        recipe = make_recipe()
        grant_store.create_grant(recipe.id, ALICE.id, is_public=True)
        self._insert_legacy_public_grant(db, recipe.id)

        page = queries.list_shared(BOB.email)

        assert [row.recipe_id for row in page.rows] == [recipe.id]
        assert page.total_count == 1

    def test_storage_error_does_not_fall_back(self, db, coordinator, monkeypatch):
        before = coordinator.projection.current()

        def failing_load():
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(db, "load_source_state", failing_load)

        with pytest.raises(RefreshFailedException) as exc_info:
            coordinator.refresh()

        status = coordinator.status()
        assert "disk I/O error" in exc_info.value.detail
        assert status.exclusive_count == 0
        assert status.failure_count == 1
        assert "disk I/O error" in status.last_error
        assert coordinator.projection.current() is before
        assert coordinator.state == RefreshState.IDLE


class TestFailedRefreshAfterCommit:
    def test_write_stays_committed_and_next_write_recovers(
        self, db, coordinator, grant_store, make_recipe, monkeypatch
    ):
        real_load = db.load_source_state
        broken = {"on": True}

        def flaky_load():
            if broken["on"]:
                raise sqlite3.OperationalError("database disk image is malformed")
            return real_load()

        monkeypatch.setattr(db, "load_source_state", flaky_load)

        recipe = make_recipe()
        grant = grant_store.create_grant(recipe.id, ALICE.id, is_public=True)

        assert db.get_recipe(recipe.id) is not None
        assert grant_store.get_grant(grant.id) is not None
        status = coordinator.status()
        assert status.stale is True
        assert status.last_error is not None
        assert len(coordinator.projection.current()) == 0

        broken["on"] = False
        grant_store.create_grant(recipe.id, ALICE.id, grantee_email=BOB.email)

        status = coordinator.status()
        assert status.stale is False
        assert status.last_error is None
        assert len(coordinator.projection.current()) == 2


class TestConcurrency:
    def test_readers_are_not_blocked_by_concurrent_refresh(self, db, coordinator, monkeypatch):
        real_load = db.load_source_state
        old_version = coordinator.projection.version
        seen = []

        def load_while_reading():
            reader = threading.Thread(target=lambda: seen.append(coordinator.projection.version))
            reader.start()
            reader.join(timeout=5)
            assert not reader.is_alive()
            return real_load()

        monkeypatch.setattr(db, "load_source_state", load_while_reading)

        coordinator.refresh()

        assert seen == [old_version]
        assert coordinator.projection.version == old_version + 1

    def test_exclusive_store_blocks_readers_until_published(self):
        store = ProjectionStore()
        replacement = ProjectionSnapshot(version=7, rows=())
        seen = []

        with store.exclusive():
            reader = threading.Thread(target=lambda: seen.append(store.current()))
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            store.publish(replacement)

        reader.join(timeout=5)
        assert seen == [replacement]

    def test_requests_covered_by_a_later_refresh_are_skipped(self, db, monkeypatch):
        coordinator = RefreshCoordinator(db)
        real_load = db.load_source_state
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def slow_load():
            calls.append(threading.current_thread().name)
            if len(calls) == 1:
                entered.set()
                release.wait(timeout=5)
            return real_load()

        monkeypatch.setattr(db, "load_source_state", slow_load)

        first = threading.Thread(target=coordinator.refresh, name="first")
        first.start()
        assert entered.wait(timeout=5)

        waiters = [threading.Thread(target=coordinator.refresh, name=f"waiter-{i}") for i in range(2)]
        for waiter in waiters:
            waiter.start()

        # both waiters have registered their request before the first finishes
        deadline = time.monotonic() + 5
        while coordinator._requested_generation < 3 and time.monotonic() < deadline:
            time.sleep(0.01)

        release.set()
        for thread in [first, *waiters]:
            thread.join(timeout=5)

        status = coordinator.status()
        assert len(calls) == 2
        assert status.refresh_count == 2
        assert status.skipped_count == 1
        assert status.stale is False
