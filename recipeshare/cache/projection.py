"""Denormalized shared-recipe rows built from the source tables.

Every share grant produces one row joining the recipe, its owner's profile
and its tags, so that listing shared recipes never needs a multi-way join.
"""

import hashlib
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from recipeshare.models.entities import SourceState, Tag, normalize_email

logger = logging.getLogger(__name__)

RowKey = Tuple[int, str]


class RefreshMode(str, Enum):
    CONCURRENT = "concurrent"
    EXCLUSIVE = "exclusive"


class ProjectionKeyConflict(Exception):
    """Two rows of a projection share the same (recipe_id, grantee_email) key"""

    def __init__(self, keys: List[RowKey]):
        self.keys = keys
        super().__init__(f"{len(keys)} duplicate projection key(s): {keys[:5]}")


class CachedRecipeView(BaseModel):
    """One (recipe, grant) pair with everything needed to list it"""

    model_config = ConfigDict(frozen=True)

    recipe_id: int
    grant_id: int
    owner_id: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    author_name: Optional[str] = None
    author_avatar: Optional[str] = None
    author_verified: bool = False
    grantee_email: Optional[str] = None
    is_public: bool = False
    tag_ids: Tuple[int, ...] = ()
    tag_names: Tuple[str, ...] = ()

    @property
    def key(self) -> RowKey:
        return (self.recipe_id, self.grantee_email or "")


def _sorted_tags(tags: Iterable[Tag]) -> List[Tag]:
    return sorted(tags, key=lambda tag: (tag.name.casefold(), tag.id))


def build_projection(state: SourceState) -> List[CachedRecipeView]:
    """Rebuild every shared-recipe row from source state.

    Links to missing tags or recipes and grants on missing recipes are
    skipped. Rows come back ordered by key (then grant id), so the same
    state always yields the same list.
    """
    recipes = {recipe.id: recipe for recipe in state.recipes}
    profiles = {profile.id: profile for profile in state.profiles}
    tags = {tag.id: tag for tag in state.tags}

    tags_by_recipe: Dict[int, Dict[int, Tag]] = {}
    for link in state.links:
        tag = tags.get(link.tag_id)
        if tag is None or link.recipe_id not in recipes:
            continue
        tags_by_recipe.setdefault(link.recipe_id, {})[tag.id] = tag

    rows: List[CachedRecipeView] = []
    skipped = 0
    for grant in state.grants:
        recipe = recipes.get(grant.recipe_id)
        if recipe is None:
            skipped += 1
            continue

        recipe_tags = _sorted_tags(tags_by_recipe.get(recipe.id, {}).values())
        author = profiles.get(recipe.owner_id)
        rows.append(
            CachedRecipeView(
                recipe_id=recipe.id,
                grant_id=grant.id,
                owner_id=recipe.owner_id,
                title=recipe.title,
                description=recipe.description,
                image_url=recipe.image_url,
                created_at=recipe.created_at,
                updated_at=recipe.updated_at,
                author_name=author.full_name if author else None,
                author_avatar=author.avatar_url if author else None,
                author_verified=author.is_verified if author else False,
                grantee_email=normalize_email(grant.grantee_email),
                is_public=grant.is_public,
                tag_ids=tuple(tag.id for tag in recipe_tags),
                tag_names=tuple(tag.name for tag in recipe_tags),
            )
        )

    if skipped:
        logger.warning(f"Skipped {skipped} grant(s) pointing at missing recipes")

    rows.sort(key=lambda row: (row.key, row.grant_id))
    return rows


def find_key_conflicts(rows: Iterable[CachedRecipeView]) -> List[RowKey]:
    """Keys that occur more than once, in first-seen order"""
    seen = set()
    duplicates: List[RowKey] = []
    for row in rows:
        if row.key in seen and row.key not in duplicates:
            duplicates.append(row.key)
        seen.add(row.key)
    return duplicates


def ensure_unique_keys(rows: List[CachedRecipeView]) -> None:
    conflicts = find_key_conflicts(rows)
    if conflicts:
        raise ProjectionKeyConflict(conflicts)


class ProjectionSnapshot:
    """An immutable, fully built version of the projection.

    Readers hold on to a snapshot for the whole of a query; refreshes
    publish a new snapshot instead of changing this one.
    """

    def __init__(
        self,
        version: int,
        rows: Iterable[CachedRecipeView],
        mode: Optional[RefreshMode] = None,
        built_at: Optional[datetime] = None,
    ):
        self._version = version
        self._rows = tuple(rows)
        self._mode = mode
        self._built_at = built_at
        self._public_rows = tuple(row for row in self._rows if row.is_public)
        by_email: Dict[str, List[CachedRecipeView]] = {}
        for row in self._rows:
            if row.grantee_email:
                by_email.setdefault(row.grantee_email, []).append(row)
        self._by_email = {email: tuple(found) for email, found in by_email.items()}

    @classmethod
    def empty(cls) -> "ProjectionSnapshot":
        return cls(version=0, rows=())

    @property
    def version(self) -> int:
        return self._version

    @property
    def rows(self) -> Tuple[CachedRecipeView, ...]:
        return self._rows

    @property
    def mode(self) -> Optional[RefreshMode]:
        return self._mode

    @property
    def built_at(self) -> Optional[datetime]:
        return self._built_at

    def __len__(self) -> int:
        return len(self._rows)

    def rows_for(self, requester_email: Optional[str]) -> List[CachedRecipeView]:
        """Rows that are public or granted to requester_email"""
        email = normalize_email(requester_email)
        matched = list(self._public_rows)
        if email:
            matched.extend(
                row for row in self._by_email.get(email, ()) if not row.is_public
            )
        return matched

    def content_digest(self) -> str:
        """Hash of the row content only (not version or build time)"""
        payload = json.dumps(
            [row.model_dump(mode="json") for row in self._rows],
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
