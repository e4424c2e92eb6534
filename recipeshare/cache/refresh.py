"""Keeps the shared-recipe projection in step with committed writes.

After a writing transaction commits, its notifications reach
``RefreshCoordinator.on_commit``, which re-reads the source tables and
publishes a new snapshot. The normal (concurrent) path builds the snapshot
without holding the reader lock and only takes it for the reference swap.
If the new rows break the one-row-per-(recipe, grantee) rule, the rebuild
is redone in exclusive mode, holding the lock so readers wait until the
snapshot has been replaced.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

from pydantic import BaseModel

from recipeshare.core.exceptions import RefreshFailedException
from recipeshare.models.entities import EntityKind

from .projection import (
    ProjectionKeyConflict,
    ProjectionSnapshot,
    RefreshMode,
    build_projection,
    ensure_unique_keys,
    find_key_conflicts,
)

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING_CONCURRENT = "refreshing_concurrent"
    REFRESHING_EXCLUSIVE = "refreshing_exclusive"


class RefreshStatus(BaseModel):
    state: RefreshState
    version: int
    row_count: int
    last_mode: Optional[RefreshMode] = None
    last_refreshed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    stale: bool = False
    refresh_count: int = 0
    failure_count: int = 0
    exclusive_count: int = 0
    skipped_count: int = 0


class ProjectionStore:
    """Holds the current snapshot behind a swap lock"""

    def __init__(self, snapshot: Optional[ProjectionSnapshot] = None):
        self._snapshot = snapshot or ProjectionSnapshot.empty()
        self._lock = threading.RLock()

    def current(self) -> ProjectionSnapshot:
        with self._lock:
            return self._snapshot

    def publish(self, snapshot: ProjectionSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    @contextmanager
    def exclusive(self) -> Iterator["ProjectionStore"]:
        """Block readers until the block exits"""
        with self._lock:
            yield self


class ProjectionReader:
    """Read-only view of a ProjectionStore"""

    def __init__(self, store: ProjectionStore):
        self._store = store

    def current(self) -> ProjectionSnapshot:
        return self._store.current()

    @property
    def version(self) -> int:
        return self._store.current().version


class RefreshCoordinator:
    def __init__(self, db, store: Optional[ProjectionStore] = None):
        self._db = db
        self._store = store or ProjectionStore()
        self._reader = ProjectionReader(self._store)

        # Serializes refreshes; never held by readers
        self._refresh_lock = threading.Lock()
        # Guards the counters below
        self._status_lock = threading.Lock()

        self._state = RefreshState.IDLE
        self._requested_generation = 0
        self._covered_generation = 0
        self._last_mode: Optional[RefreshMode] = None
        self._last_refreshed_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._refresh_count = 0
        self._failure_count = 0
        self._exclusive_count = 0
        self._skipped_count = 0

    @property
    def projection(self) -> ProjectionReader:
        return self._reader

    @property
    def state(self) -> RefreshState:
        return self._state

    def attach(self) -> None:
        """Start receiving commit notifications from the database"""
        self._db.add_commit_listener(self.on_commit)

    def detach(self) -> None:
        self._db.remove_commit_listener(self.on_commit)

    # -- notifications -------------------------------------------------------

    def on_commit(self, notifications: List[Tuple[EntityKind, Any]]) -> None:
        """Refresh once for everything a committed transaction wrote.

        A failed refresh is logged and recorded; the write that triggered it
        stays committed and the projection stays stale until the next write.
        """
        if not notifications:
            return
        kinds = sorted({kind.value for kind, _ in notifications})
        logger.info(f"Refreshing shared recipes after commit touching {', '.join(kinds)}")
        try:
            self._request_refresh()
        except RefreshFailedException as e:
            logger.warning(f"Shared recipe refresh failed after commit: {e.detail}")

    def notify(self, kind: EntityKind, entity_id: Any) -> None:
        self.on_commit([(kind, entity_id)])

    def on_recipe_write(self, recipe_id: int) -> None:
        self.notify(EntityKind.RECIPE, recipe_id)

    def on_grant_write(self, grant_id: int) -> None:
        self.notify(EntityKind.GRANT, grant_id)

    def on_tag_link_write(self, recipe_id: int, tag_id: int) -> None:
        self.notify(EntityKind.TAG_LINK, (recipe_id, tag_id))

    def on_profile_write(self, profile_id: str) -> None:
        self.notify(EntityKind.PROFILE, profile_id)

    def on_tag_write(self, tag_id: int) -> None:
        self.notify(EntityKind.TAG, tag_id)

    # -- refresh -------------------------------------------------------------

    def refresh(self) -> ProjectionSnapshot:
        """Rebuild the projection now.

        Raises:
            RefreshFailedException: the rebuild failed; the previous snapshot stays current
        """
        return self._request_refresh()

    def _request_refresh(self) -> ProjectionSnapshot:
        with self._status_lock:
            self._requested_generation += 1
            target = self._requested_generation

        with self._refresh_lock:
            if self._covered_generation >= target:
                # A refresh that started after this request already ran
                with self._status_lock:
                    self._skipped_count += 1
                logger.debug(f"Refresh for generation {target} already covered")
                return self._store.current()

            # Everything requested so far committed before this read starts
            with self._status_lock:
                generation = self._requested_generation
            try:
                return self._refresh_concurrently(generation)
            finally:
                self._state = RefreshState.IDLE

    def _refresh_concurrently(self, generation: int) -> ProjectionSnapshot:
        self._state = RefreshState.REFRESHING_CONCURRENT
        try:
            rows = build_projection(self._db.load_source_state())
            ensure_unique_keys(rows)
        except ProjectionKeyConflict as conflict:
            logger.warning(
                f"Concurrent refresh rejected ({conflict}); falling back to exclusive refresh"
            )
            return self._refresh_exclusively(generation)
        except Exception as e:
            raise self._failed(RefreshMode.CONCURRENT, e) from e

        snapshot = self._next_snapshot(rows, RefreshMode.CONCURRENT)
        self._store.publish(snapshot)
        self._succeeded(snapshot, generation)
        return snapshot

    def _refresh_exclusively(self, generation: int) -> ProjectionSnapshot:
        self._state = RefreshState.REFRESHING_EXCLUSIVE
        with self._store.exclusive() as store:
            try:
                rows = build_projection(self._db.load_source_state())
            except Exception as e:
                raise self._failed(RefreshMode.EXCLUSIVE, e) from e

            conflicts = find_key_conflicts(rows)
            if conflicts:
                logger.warning(
                    f"Publishing {len(rows)} rows with {len(conflicts)} duplicate key(s)"
                )
            snapshot = self._next_snapshot(rows, RefreshMode.EXCLUSIVE)
            store.publish(snapshot)

        with self._status_lock:
            self._exclusive_count += 1
        self._succeeded(snapshot, generation)
        return snapshot

    def _next_snapshot(self, rows, mode: RefreshMode) -> ProjectionSnapshot:
        return ProjectionSnapshot(
            version=self._store.current().version + 1,
            rows=rows,
            mode=mode,
            built_at=datetime.now(timezone.utc),
        )

    def _succeeded(self, snapshot: ProjectionSnapshot, generation: int) -> None:
        with self._status_lock:
            self._covered_generation = max(self._covered_generation, generation)
            self._last_mode = snapshot.mode
            self._last_refreshed_at = snapshot.built_at
            self._last_error = None
            self._refresh_count += 1
        logger.info(
            f"Shared recipes refreshed ({snapshot.mode.value}): "
            f"version {snapshot.version}, {len(snapshot)} rows"
        )

    def _failed(self, mode: RefreshMode, error: Exception) -> RefreshFailedException:
        message = f"{mode.value} refresh failed: {error}"
        with self._status_lock:
            self._last_error = message
            self._failure_count += 1
        logger.warning(f"Shared recipe {message}")
        return RefreshFailedException(detail=message)

    def status(self) -> RefreshStatus:
        snapshot = self._store.current()
        with self._status_lock:
            return RefreshStatus(
                state=self._state,
                version=snapshot.version,
                row_count=len(snapshot),
                last_mode=self._last_mode,
                last_refreshed_at=self._last_refreshed_at,
                last_error=self._last_error,
                stale=self._covered_generation < self._requested_generation,
                refresh_count=self._refresh_count,
                failure_count=self._failure_count,
                exclusive_count=self._exclusive_count,
                skipped_count=self._skipped_count,
            )
