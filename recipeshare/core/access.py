"""Visibility rules for recipes.

A recipe is visible to its owner, to everyone once it carries a public
grant, and to any requester whose email matches one of its grants. The
same predicate validates writes and filters cached rows on the way out.
"""

from typing import Iterable, Optional

from recipeshare.core.exceptions import PermissionDeniedException
from recipeshare.models.entities import Requester, ShareGrant, normalize_email


def is_owner(owner_id: Optional[str], requester_id: Optional[str]) -> bool:
    """True when requester_id identifies the owner. Missing ids never match."""
    return bool(owner_id) and bool(requester_id) and owner_id == requester_id


def can_view(recipe, grants: Iterable[ShareGrant], requester: Requester) -> bool:
    """Decide whether requester may see recipe.

    Args:
        recipe: anything carrying ``id`` and ``owner_id`` (a Recipe or a
            cached row)
        grants: the grants to consider; grants for other recipes are ignored
        requester: identity of the caller
    """
    if is_owner(recipe.owner_id, requester.id):
        return True

    requester_email = normalize_email(requester.email)
    recipe_id = recipe.recipe_id if hasattr(recipe, "recipe_id") else recipe.id
    relevant = [grant for grant in grants if grant.recipe_id == recipe_id]

    if any(grant.is_public for grant in relevant):
        return True

    if requester_email is None:
        return False
    return any(normalize_email(grant.grantee_email) == requester_email for grant in relevant)


def ensure_owner(recipe, requester_id: Optional[str], action: str = "modify this recipe") -> None:
    """Raise PermissionDeniedException unless requester_id owns recipe"""
    if not is_owner(recipe.owner_id, requester_id):
        raise PermissionDeniedException(
            f"Only the recipe owner can {action}",
            detail=f"recipe {recipe.id} is not owned by the requester",
        )
