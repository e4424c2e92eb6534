"""Shared recipe listing for the Recipe Share API"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from recipeshare.cache.queries import SharedRecipePage, SharedRecipeQueries
from recipeshare.core.config import settings
from recipeshare.core.exceptions import (
    DatabaseException,
    RecipeShareException,
    ValidationException,
)
from recipeshare.dependencies.auth import UserInfo, require_authentication
from recipeshare.dependencies.database import get_shared_queries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shared", tags=["shared"])


def parse_tag_ids(tags: Optional[str]) -> List[int]:
    """Parse a comma separated list of tag ids such as ``"3,7"``"""
    if not tags:
        return []
    tag_ids = []
    for part in tags.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            tag_ids.append(int(part))
        except ValueError:
            raise ValidationException("Tag ids must be integers", detail=f"tags={tags}")
    return tag_ids


@router.get("", response_model=SharedRecipePage)
async def list_shared_recipes(
    tags: Optional[str] = Query(None, description="Comma separated tag ids; any of them matches"),
    q: Optional[str] = Query(None, description="Search title and description"),
    limit: int = Query(settings.default_page_size, description="Page size"),
    offset: int = Query(0, description="Rows to skip"),
    queries: SharedRecipeQueries = Depends(get_shared_queries),
    user: UserInfo = Depends(require_authentication),
):
    """List recipes shared publicly or with the caller's email, newest first"""
    try:
        tag_ids = parse_tag_ids(tags)
        logger.info(
            f"Listing shared recipes for {user.user_id}: tags={tag_ids}, q={q!r}, "
            f"limit={limit}, offset={offset}"
        )
        return queries.list_shared(
            user.email, tag_filter=tag_ids, search_term=q, limit=limit, offset=offset
        )
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error listing shared recipes: {str(e)}")
        raise DatabaseException("Failed to list shared recipes", detail=str(e))
