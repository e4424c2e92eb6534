import logging
import threading
from contextlib import contextmanager
from importlib import resources
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from recipeshare.core import access
from recipeshare.core.exceptions import NotFoundException, ValidationException
from recipeshare.models.entities import (
    EntityKind,
    Profile,
    Recipe,
    RecipeDetail,
    RecipeTagLink,
    Requester,
    ShareGrant,
    SourceState,
    Tag,
    normalize_email,
)

from .backend_base import DatabaseBackend, Transaction
from .db_utils import chunked, escape_like, search_key, utc_now
from .sql_queries import (
    build_owned_recipes_count_query,
    build_owned_recipes_query,
    delete_recipe_sql,
    delete_recipe_tag_sql,
    get_grants_for_recipe_sql,
    get_profile_sql,
    get_recipe_by_id_sql,
    get_recipe_tags_sql,
    insert_recipe_sql,
    insert_recipe_tag_sql,
    set_favorite_sql,
    source_grants_sql,
    source_links_sql,
    source_profiles_sql,
    source_recipes_sql,
    source_tags_sql,
    tags_for_recipes_sql,
    upsert_profile_sql,
)
from .tag_catalog import TagCatalog

logger = logging.getLogger(__name__)

Notification = Tuple[EntityKind, Any]
CommitListener = Callable[[List[Notification]], None]

UPDATABLE_RECIPE_FIELDS = ("title", "description", "instructions", "image_url")


class _UnitOfWork:
    def __init__(self, tx: Transaction):
        self.tx = tx
        self.notifications: List[Notification] = []

    def add(self, kind: EntityKind, entity_id: Any) -> None:
        notification = (kind, entity_id)
        if notification not in self.notifications:
            self.notifications.append(notification)


class Database:
    """Source-of-truth store for recipes, profiles, tag links and grants.

    Every write runs inside a unit of work. Writes that the shared recipe
    cache depends on record a notification, and the notifications of a
    unit of work are handed to the commit listeners once, after the
    transaction commits. Rolled-back work notifies nobody.
    """

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend
        self._local = threading.local()
        self._commit_listeners: List[CommitListener] = []
        self.tags = TagCatalog(self)
        logger.info(f"Database initialized with {type(backend).__name__}")

    # -- infrastructure ------------------------------------------------------

    def initialize_schema(self) -> None:
        """Create any missing tables and indexes"""
        script = (
            resources.files("recipeshare.db")
            .joinpath("schema")
            .joinpath(self.backend.schema_file)
            .read_text(encoding="utf-8")
        )
        self.backend.execute_script(script)
        logger.info(f"Schema initialized from {self.backend.schema_file}")

    @property
    def integrity_errors(self):
        return self.backend.integrity_errors

    def add_commit_listener(self, listener: CommitListener) -> None:
        self._commit_listeners.append(listener)

    def remove_commit_listener(self, listener: CommitListener) -> None:
        if listener in self._commit_listeners:
            self._commit_listeners.remove(listener)

    def in_unit_of_work(self) -> bool:
        return getattr(self._local, "unit_of_work", None) is not None

    @contextmanager
    def unit_of_work(self) -> Iterator[Transaction]:
        """Run the enclosed statements in one write transaction.

        A nested call joins the enclosing unit of work, so its writes and
        notifications commit or roll back with the outer one.
        """
        current = getattr(self._local, "unit_of_work", None)
        if current is not None:
            yield current.tx
            return

        with self.backend.transaction() as tx:
            uow = _UnitOfWork(tx)
            self._local.unit_of_work = uow
            try:
                yield tx
            finally:
                self._local.unit_of_work = None

        if uow.notifications:
            self._deliver(uow.notifications)

    def notify(self, kind: EntityKind, entity_id: Any) -> None:
        """Record a cache-relevant write.

        Inside a unit of work the notification waits for commit; outside one
        it is delivered straight away.
        """
        current = getattr(self._local, "unit_of_work", None)
        if current is not None:
            current.add(kind, entity_id)
        else:
            self._deliver([(kind, entity_id)])

    def _deliver(self, notifications: List[Notification]) -> None:
        logger.debug(f"Delivering {len(notifications)} notification(s) after commit")
        for listener in list(self._commit_listeners):
            listener(list(notifications))

    def query(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Run a statement inside the current unit of work, or on its own"""
        current = getattr(self._local, "unit_of_work", None)
        if current is not None:
            return current.tx.execute(sql, params)
        return self.backend.execute(sql, params)

    # -- recipes -------------------------------------------------------------

    def create_recipe(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        instructions: Optional[str] = None,
        image_url: Optional[str] = None,
        is_favorite: bool = False,
    ) -> Recipe:
        """Create a recipe owned by owner_id"""
        if not owner_id:
            raise ValidationException("Recipe owner is required")
        if not title or not title.strip():
            raise ValidationException("Recipe title cannot be empty")

        now = utc_now()
        try:
            with self.unit_of_work() as tx:
                recipe_id = tx.execute_returning_id(
                    insert_recipe_sql,
                    (
                        owner_id,
                        title.strip(),
                        description,
                        instructions,
                        image_url,
                        bool(is_favorite),
                        search_key(title.strip()),
                        search_key(description),
                        now,
                        now,
                    ),
                )
                self.notify(EntityKind.RECIPE, recipe_id)
                recipe = self._require_recipe(recipe_id)
            logger.info(f"Created recipe {recipe_id} for owner {owner_id}")
            return recipe
        except Exception as e:
            logger.error(f"Error creating recipe '{title}': {str(e)}")
            raise

    def update_recipe(self, recipe_id: int, requester_id: str, data: Dict[str, Any]) -> Recipe:
        """Update an existing recipe.

        Only fields present in data are written; fields missing from data are
        left unchanged. An explicit None clears description, instructions or
        image_url. The title can never be cleared.
        """
        changes = {
            field: data[field] for field in UPDATABLE_RECIPE_FIELDS if field in data
        }
        if "title" in changes:
            if not changes["title"] or not changes["title"].strip():
                raise ValidationException("Recipe title cannot be empty")
            changes["title"] = changes["title"].strip()
            changes["title_key"] = search_key(changes["title"])
        if "description" in changes:
            changes["description_key"] = search_key(changes["description"])

        try:
            with self.unit_of_work() as tx:
                recipe = self._require_recipe(recipe_id)
                access.ensure_owner(recipe, requester_id, action="edit this recipe")
                if changes:
                    assignments = ", ".join(f"{field} = ?" for field in changes)
                    tx.execute(
                        f"UPDATE recipes SET {assignments}, updated_at = ? WHERE id = ?",
                        (*changes.values(), utc_now(), recipe_id),
                    )
                    self.notify(EntityKind.RECIPE, recipe_id)
                updated = self._require_recipe(recipe_id)
            return updated
        except Exception as e:
            logger.error(f"Error updating recipe {recipe_id}: {str(e)}")
            raise

    def delete_recipe(self, recipe_id: int, requester_id: str) -> bool:
        """Delete a recipe with its tag links and grants. Returns False if it did not exist."""
        try:
            with self.unit_of_work() as tx:
                recipe = self.get_recipe(recipe_id)
                if recipe is None:
                    return False
                access.ensure_owner(recipe, requester_id, action="delete this recipe")
                # recipe_tags and share_grants rows go with it via ON DELETE CASCADE
                tx.execute(delete_recipe_sql, (recipe_id,))
                self.notify(EntityKind.RECIPE, recipe_id)
            logger.info(f"Deleted recipe {recipe_id}")
            return True
        except Exception as e:
            logger.error(f"Error deleting recipe {recipe_id}: {str(e)}")
            raise

    def set_favorite(self, recipe_id: int, requester_id: str, is_favorite: bool) -> Recipe:
        """Toggle the owner's favorite flag.

        The shared cache carries no favorite flag, so this does not notify.
        """
        with self.unit_of_work() as tx:
            recipe = self._require_recipe(recipe_id)
            access.ensure_owner(recipe, requester_id, action="change this recipe's favorite flag")
            tx.execute(set_favorite_sql, (bool(is_favorite), utc_now(), recipe_id))
            return self._require_recipe(recipe_id)

    def get_recipe(self, recipe_id: int) -> Optional[Recipe]:
        rows = self.query(get_recipe_by_id_sql, (recipe_id,))
        return Recipe(**rows[0]) if rows else None

    def _require_recipe(self, recipe_id: int) -> Recipe:
        recipe = self.get_recipe(recipe_id)
        if recipe is None:
            raise NotFoundException(f"Recipe with ID {recipe_id} not found")
        return recipe

    def get_recipe_grants(self, recipe_id: int) -> List[ShareGrant]:
        rows = self.query(get_grants_for_recipe_sql, (recipe_id,))
        return [ShareGrant(**row) for row in rows]

    def can_view(self, recipe_id: int, requester: Requester) -> bool:
        """Whether requester may see the recipe, judged against live grants"""
        recipe = self._require_recipe(recipe_id)
        return access.can_view(recipe, self.get_recipe_grants(recipe_id), requester)

    def get_recipe_detail(self, recipe_id: int, requester: Requester) -> RecipeDetail:
        """Recipe with tags and author, for requesters allowed to see it.

        A recipe the requester may not see is reported as missing.
        """
        recipe = self.get_recipe(recipe_id)
        if recipe is None or not access.can_view(
            recipe, self.get_recipe_grants(recipe_id), requester
        ):
            raise NotFoundException(f"Recipe with ID {recipe_id} not found")

        return RecipeDetail(
            recipe=recipe,
            tags=self.get_recipe_tags(recipe_id),
            author=self.get_profile(recipe.owner_id),
            is_owner=access.is_owner(recipe.owner_id, requester.id),
        )

    def get_owned_recipes(
        self,
        owner_id: str,
        tag_ids: Optional[Sequence[int]] = None,
        search_term: Optional[str] = None,
        limit: int = 12,
        offset: int = 0,
    ) -> Tuple[List[Recipe], int]:
        """One page of an owner's recipes plus the total match count.

        Favorites come first, then newest first.
        """
        tag_ids = list(dict.fromkeys(tag_ids or []))
        term = search_key(search_term.strip()) if search_term else ""

        params: List[Any] = [owner_id, *tag_ids]
        if term:
            pattern = f"%{escape_like(term)}%"
            params.extend([pattern, pattern])

        count_rows = self.query(
            build_owned_recipes_count_query(len(tag_ids), bool(term)), tuple(params)
        )
        total_count = count_rows[0]["total_count"] if count_rows else 0

        rows = self.query(
            build_owned_recipes_query(len(tag_ids), bool(term)),
            tuple(params + [limit, offset]),
        )
        return [Recipe(**row) for row in rows], total_count

    # -- tag links -----------------------------------------------------------

    def get_recipe_tags(self, recipe_id: int) -> List[Tag]:
        rows = self.query(get_recipe_tags_sql, (recipe_id,))
        return [Tag(**row) for row in rows]

    def get_tags_for_recipes(self, recipe_ids: Sequence[int]) -> Dict[int, List[Tag]]:
        """Tags of many recipes at once, sorted by name within each recipe"""
        result: Dict[int, List[Tag]] = {recipe_id: [] for recipe_id in recipe_ids}
        for chunk in chunked(list(result)):
            for row in self.query(tags_for_recipes_sql(len(chunk)), tuple(chunk)):
                result[row["recipe_id"]].append(Tag(id=row["id"], name=row["name"]))
        return result

    def add_recipe_tag(self, recipe_id: int, tag_name: str, requester_id: str) -> Tag:
        """Attach a tag (created on first use) to a recipe. Linking twice is a no-op."""
        with self.unit_of_work() as tx:
            recipe = self._require_recipe(recipe_id)
            access.ensure_owner(recipe, requester_id, action="tag this recipe")
            tag = self.tags.get_or_create(tag_name)
            result = tx.execute(insert_recipe_tag_sql, (recipe_id, tag.id, utc_now()))
            if result and result[0].get("rowcount", 0) > 0:
                self.notify(EntityKind.TAG_LINK, (recipe_id, tag.id))
        logger.info(f"Tagged recipe {recipe_id} with '{tag.name}' ({tag.id})")
        return tag

    def remove_recipe_tag(self, recipe_id: int, tag_id: int, requester_id: str) -> bool:
        """Detach a tag from a recipe. Returns False if it was not attached."""
        with self.unit_of_work() as tx:
            recipe = self._require_recipe(recipe_id)
            access.ensure_owner(recipe, requester_id, action="untag this recipe")
            result = tx.execute(delete_recipe_tag_sql, (recipe_id, tag_id))
            removed = bool(result and result[0].get("rowcount", 0) > 0)
            if removed:
                self.notify(EntityKind.TAG_LINK, (recipe_id, tag_id))
        return removed

    # -- profiles ------------------------------------------------------------

    def upsert_profile(
        self,
        profile_id: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        is_verified: bool = False,
    ) -> Profile:
        """Create or replace the display profile of a user"""
        if not profile_id:
            raise ValidationException("Profile id is required")

        with self.unit_of_work() as tx:
            tx.execute(
                upsert_profile_sql,
                (
                    profile_id,
                    normalize_email(email),
                    full_name,
                    avatar_url,
                    bool(is_verified),
                    utc_now(),
                ),
            )
            self.notify(EntityKind.PROFILE, profile_id)
            profile = self.get_profile(profile_id)
        logger.info(f"Upserted profile {profile_id}")
        return profile

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        rows = self.query(get_profile_sql, (profile_id,))
        return Profile(**rows[0]) if rows else None

    # -- shared recipe cache source ------------------------------------------

    def load_source_state(self) -> SourceState:
        """Read every table the shared recipe cache is built from, in one snapshot"""
        with self.backend.transaction(read_only=True) as tx:
            recipes = [Recipe(**row) for row in tx.execute(source_recipes_sql)]
            grants = [ShareGrant(**row) for row in tx.execute(source_grants_sql)]
            links = [RecipeTagLink(**row) for row in tx.execute(source_links_sql)]
            tags = [Tag(**row) for row in tx.execute(source_tags_sql)]
            profiles = [Profile(**row) for row in tx.execute(source_profiles_sql)]

        return SourceState(
            recipes=recipes, grants=grants, links=links, tags=tags, profiles=profiles
        )
