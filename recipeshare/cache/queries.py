"""Paginated, filterable reads of shared and owned recipes."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from recipeshare.core import access
from recipeshare.core.config import settings
from recipeshare.core.exceptions import ValidationException
from recipeshare.models.entities import Requester, Tag, normalize_email

from .projection import CachedRecipeView

logger = logging.getLogger(__name__)


class SharedRecipe(BaseModel):
    recipe_id: int
    owner_id: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    author_name: Optional[str] = None
    author_avatar: Optional[str] = None
    author_verified: bool = False
    tag_ids: List[int] = Field(default_factory=list)
    tag_names: List[str] = Field(default_factory=list)
    is_public: bool = False
    shared_with_me: bool = False


class SharedRecipePage(BaseModel):
    rows: List[SharedRecipe] = Field(default_factory=list)
    has_more: bool = False
    total_count: int = 0


class OwnedRecipe(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_favorite: bool = False
    created_at: datetime
    updated_at: datetime
    tags: List[Tag] = Field(default_factory=list)


class OwnedRecipePage(BaseModel):
    rows: List[OwnedRecipe] = Field(default_factory=list)
    has_more: bool = False
    total_count: int = 0


def _matches_search(row: CachedRecipeView, term: str) -> bool:
    return term in row.title.casefold() or term in (row.description or "").casefold()


class SharedRecipeQueries:
    """Read side for shared recipe listings.

    Shared listings are served from the current projection snapshot and,
    unless disabled, re-checked against live grants so that a revoked grant
    stops showing before the next refresh lands.
    """

    def __init__(
        self,
        db,
        projection,
        grants,
        default_page_size: Optional[int] = None,
        max_page_size: Optional[int] = None,
        live_access_check: Optional[bool] = None,
    ):
        self.db = db
        self.projection = projection
        self.grants = grants
        self.default_page_size = default_page_size or settings.default_page_size
        self.max_page_size = max_page_size or settings.max_page_size
        self.live_access_check = (
            settings.live_access_check if live_access_check is None else live_access_check
        )

    def _validate_page(self, limit: Optional[int], offset: int) -> int:
        limit = self.default_page_size if limit is None else limit
        if limit < 1 or limit > self.max_page_size:
            raise ValidationException(
                f"limit must be between 1 and {self.max_page_size}", detail=f"limit={limit}"
            )
        if offset < 0:
            raise ValidationException("offset cannot be negative", detail=f"offset={offset}")
        return limit

    def list_shared(
        self,
        requester_email: Optional[str],
        tag_filter: Optional[Sequence[int]] = None,
        search_term: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> SharedRecipePage:
        """One page of recipes shared publicly or with requester_email.

        Args:
            requester_email: email of the caller; None sees public recipes only
            tag_filter: tag ids; a recipe matches if it carries any of them
            search_term: case-insensitive substring of title or description
            limit: page size, 1 to max_page_size
            offset: rows to skip

        Returns:
            SharedRecipePage with rows newest first, the total match count and
            whether more rows follow this page
        """
        limit = self._validate_page(limit, offset)
        email = normalize_email(requester_email)
        wanted_tags = set(tag_filter or [])
        term = (search_term or "").strip().casefold()

        snapshot = self.projection.current()

        grouped: Dict[int, SharedRecipe] = {}
        for row in snapshot.rows_for(email):
            if wanted_tags and wanted_tags.isdisjoint(row.tag_ids):
                continue
            if term and not _matches_search(row, term):
                continue

            shared_with_me = bool(email) and row.grantee_email == email
            existing = grouped.get(row.recipe_id)
            if existing is None:
                grouped[row.recipe_id] = SharedRecipe(
                    recipe_id=row.recipe_id,
                    owner_id=row.owner_id,
                    title=row.title,
                    description=row.description,
                    image_url=row.image_url,
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                    author_name=row.author_name,
                    author_avatar=row.author_avatar,
                    author_verified=row.author_verified,
                    tag_ids=list(row.tag_ids),
                    tag_names=list(row.tag_names),
                    is_public=row.is_public,
                    shared_with_me=shared_with_me,
                )
            else:
                existing.is_public = existing.is_public or row.is_public
                existing.shared_with_me = existing.shared_with_me or shared_with_me

        candidates = list(grouped.values())
        if self.live_access_check and candidates:
            candidates = self._recheck_live(candidates, Requester(email=email))

        candidates.sort(key=lambda recipe: (recipe.created_at, recipe.recipe_id), reverse=True)
        total_count = len(candidates)
        page = candidates[offset:offset + limit]

        logger.debug(
            f"Shared recipes for {email or 'anonymous'}: {total_count} match(es), "
            f"returning {len(page)} from offset {offset} (snapshot v{snapshot.version})"
        )
        return SharedRecipePage(
            rows=page,
            has_more=offset + len(page) < total_count,
            total_count=total_count,
        )

    def _recheck_live(
        self, candidates: List[SharedRecipe], requester: Requester
    ) -> List[SharedRecipe]:
        live_grants = self.grants.get_grants_for_recipes([c.recipe_id for c in candidates])
        visible = [
            candidate
            for candidate in candidates
            if access.can_view(candidate, live_grants.get(candidate.recipe_id, []), requester)
        ]
        dropped = len(candidates) - len(visible)
        if dropped:
            logger.info(f"Dropped {dropped} cached recipe(s) no longer shared with the requester")
        return visible

    def list_owned(
        self,
        owner_id: str,
        tag_filter: Optional[Sequence[int]] = None,
        search_term: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> OwnedRecipePage:
        """One page of the owner's own recipes, favorites first"""
        limit = self._validate_page(limit, offset)
        recipes, total_count = self.db.get_owned_recipes(
            owner_id, tag_ids=tag_filter, search_term=search_term, limit=limit, offset=offset
        )
        tags = self.db.get_tags_for_recipes([recipe.id for recipe in recipes])

        rows = [
            OwnedRecipe(
                id=recipe.id,
                title=recipe.title,
                description=recipe.description,
                image_url=recipe.image_url,
                is_favorite=recipe.is_favorite,
                created_at=recipe.created_at,
                updated_at=recipe.updated_at,
                tags=tags.get(recipe.id, []),
            )
            for recipe in recipes
        ]
        return OwnedRecipePage(
            rows=rows,
            has_more=offset + len(rows) < total_count,
            total_count=total_count,
        )
