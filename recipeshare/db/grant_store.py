"""Share grants: who, besides the owner, may see a recipe."""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from recipeshare.core import access
from recipeshare.core.exceptions import (
    DuplicateGrantException,
    NotFoundException,
    PermissionDeniedException,
    ValidationException,
)
from recipeshare.models.entities import EntityKind, ShareGrant, normalize_email

from .db_utils import chunked, utc_now
from .sql_queries import (
    delete_grant_sql,
    find_email_grant_sql,
    find_public_grant_sql,
    get_grant_by_id_sql,
    grants_for_recipes_sql,
    insert_grant_sql,
)

if TYPE_CHECKING:
    from .db_core import Database

logger = logging.getLogger(__name__)


class ShareGrantStore:
    def __init__(self, db: "Database"):
        self.db = db

    def create_grant(
        self,
        recipe_id: int,
        owner_id: str,
        grantee_email: Optional[str] = None,
        is_public: bool = False,
    ) -> ShareGrant:
        """Share a recipe with one email address, or with everyone.

        Exactly one of grantee_email and is_public must be given. The grant
        is recorded as made by owner_id, who must own the recipe.

        Raises:
            ValidationException: neither or both targets given, or a malformed email
            NotFoundException: the recipe does not exist
            PermissionDeniedException: owner_id does not own the recipe
            DuplicateGrantException: the grantee (or the public) already has access
        """
        email = normalize_email(grantee_email)
        if (email is None) == (not is_public):
            raise ValidationException(
                "Share with either an email address or the public, not both"
                if email
                else "An email address or a public share is required"
            )
        if email is not None and ("@" not in email or email.startswith("@") or email.endswith("@")):
            raise ValidationException("Invalid email address", detail=email)

        grantee = email or "public"
        with self.db.unit_of_work() as tx:
            recipe = self.db.get_recipe(recipe_id)
            if recipe is None:
                raise NotFoundException(f"Recipe with ID {recipe_id} not found")
            access.ensure_owner(recipe, owner_id, action="share this recipe")

            if email is not None:
                existing = tx.execute(find_email_grant_sql, (recipe_id, email))
            else:
                existing = tx.execute(find_public_grant_sql, (recipe_id, True))
            if existing:
                raise DuplicateGrantException(
                    detail=f"recipe {recipe_id} is already shared with {grantee}"
                )

            try:
                grant_id = tx.execute_returning_id(
                    insert_grant_sql,
                    (recipe_id, recipe.owner_id, email, bool(is_public), utc_now()),
                )
            except self.db.integrity_errors as e:
                raise DuplicateGrantException(
                    detail=f"recipe {recipe_id} is already shared with {grantee}"
                ) from e

            self.db.notify(EntityKind.GRANT, grant_id)
            grant = self.get_grant(grant_id)

        logger.info(f"Recipe {recipe_id} shared with {grantee} (grant {grant_id})")
        return grant

    def get_grant(self, grant_id: int) -> Optional[ShareGrant]:
        rows = self.db.query(get_grant_by_id_sql, (grant_id,))
        return ShareGrant(**rows[0]) if rows else None

    def revoke_grant(self, grant_id: int, requester_id: str) -> None:
        """Remove a grant. Only whoever made the grant may revoke it."""
        with self.db.unit_of_work() as tx:
            grant = self.get_grant(grant_id)
            if grant is None:
                raise NotFoundException(f"Share grant with ID {grant_id} not found")
            if not access.is_owner(grant.granted_by, requester_id):
                raise PermissionDeniedException(
                    "Only the user who shared the recipe can revoke this grant",
                    detail=f"grant {grant_id}",
                )
            tx.execute(delete_grant_sql, (grant_id,))
            self.db.notify(EntityKind.GRANT, grant_id)
        logger.info(f"Revoked grant {grant_id} on recipe {grant.recipe_id}")

    def revoke_grant_for_email(self, recipe_id: int, email: str, requester_id: str) -> None:
        """Stop sharing a recipe with one email address"""
        normalized = normalize_email(email)
        if normalized is None:
            raise ValidationException("An email address is required")

        with self.db.unit_of_work() as tx:
            recipe = self.db.get_recipe(recipe_id)
            if recipe is None:
                raise NotFoundException(f"Recipe with ID {recipe_id} not found")
            access.ensure_owner(recipe, requester_id, action="change who this recipe is shared with")
            rows = tx.execute(find_email_grant_sql, (recipe_id, normalized))
            if not rows:
                raise NotFoundException(
                    f"Recipe {recipe_id} is not shared with {normalized}"
                )
            grant_id = rows[0]["id"]
            tx.execute(delete_grant_sql, (grant_id,))
            self.db.notify(EntityKind.GRANT, grant_id)
        logger.info(f"Stopped sharing recipe {recipe_id} with {normalized}")

    def make_private(self, recipe_id: int, requester_id: str) -> int:
        """Remove every public grant on a recipe. Returns how many were removed."""
        with self.db.unit_of_work() as tx:
            recipe = self.db.get_recipe(recipe_id)
            if recipe is None:
                raise NotFoundException(f"Recipe with ID {recipe_id} not found")
            access.ensure_owner(recipe, requester_id, action="make this recipe private")
            rows = tx.execute(find_public_grant_sql, (recipe_id, True))
            for row in rows:
                tx.execute(delete_grant_sql, (row["id"],))
                self.db.notify(EntityKind.GRANT, row["id"])
        return len(rows)

    def list_grants(self, recipe_id: int, requester_id: str) -> List[ShareGrant]:
        """Grants on a recipe, visible to its owner only"""
        recipe = self.db.get_recipe(recipe_id)
        if recipe is None:
            raise NotFoundException(f"Recipe with ID {recipe_id} not found")
        access.ensure_owner(recipe, requester_id, action="see who this recipe is shared with")
        return self.db.get_recipe_grants(recipe_id)

    def get_grants_for_recipes(self, recipe_ids: Sequence[int]) -> Dict[int, List[ShareGrant]]:
        """Live grants for many recipes, keyed by recipe id"""
        result: Dict[int, List[ShareGrant]] = {recipe_id: [] for recipe_id in recipe_ids}
        for chunk in chunked(list(result)):
            for row in self.db.query(grants_for_recipes_sql(len(chunk)), tuple(chunk)):
                result[row["recipe_id"]].append(ShareGrant(**row))
        return result
