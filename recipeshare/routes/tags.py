"""Tag endpoints for the Recipe Share API"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from recipeshare.core.exceptions import DatabaseException, NotFoundException, RecipeShareException
from recipeshare.db.tag_catalog import TagCatalog
from recipeshare.dependencies.auth import UserInfo, require_admin, require_authentication
from recipeshare.dependencies.database import get_tag_catalog
from recipeshare.models.requests import TagCreate
from recipeshare.models.responses import MessageResponse, TagResponse, TagUsageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=List[TagUsageResponse])
async def list_tags(tags: TagCatalog = Depends(get_tag_catalog)):
    """Get all tags with usage counts"""
    try:
        logger.info("Getting tags")
        return [TagUsageResponse(**tag) for tag in tags.list_tags()]
    except Exception as e:
        logger.error(f"Error getting tags: {str(e)}")
        raise DatabaseException("Failed to retrieve tags", detail=str(e))


@router.get("/search", response_model=List[TagResponse])
async def search_tags(
    q: str = Query(..., min_length=1, description="Tag name prefix"),
    limit: int = Query(20, ge=1, le=100, description="Maximum tags to return"),
    tags: TagCatalog = Depends(get_tag_catalog),
):
    """Find tags whose name starts with q, ignoring case"""
    try:
        return [TagResponse(id=tag.id, name=tag.name) for tag in tags.search_tags(q, limit)]
    except Exception as e:
        logger.error(f"Error searching tags: {str(e)}")
        raise DatabaseException("Failed to search tags", detail=str(e))


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(
    tag_data: TagCreate,
    tags: TagCatalog = Depends(get_tag_catalog),
    user: UserInfo = Depends(require_authentication),  # User needed for authentication only
):
    """Create a tag, or return the existing one with the same name"""
    try:
        logger.info(f"Creating tag: {tag_data.name}")
        _ = user
        tag = tags.get_or_create(tag_data.name)
        return TagResponse(id=tag.id, name=tag.name)
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error creating tag: {str(e)}")
        raise DatabaseException("Failed to create tag", detail=str(e))


@router.delete("/{tag_id}", response_model=MessageResponse)
async def delete_tag(
    tag_id: int,
    tags: TagCatalog = Depends(get_tag_catalog),
    user: UserInfo = Depends(require_admin),
):
    """Delete a tag and remove it from every recipe (admin only)"""
    try:
        logger.info(f"Admin {user.user_id} deleting tag {tag_id}")
        if not tags.delete_tag(tag_id):
            raise NotFoundException(f"Tag with ID {tag_id} not found")
        return MessageResponse(message="Tag deleted successfully")
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error deleting tag: {str(e)}")
        raise DatabaseException("Failed to delete tag", detail=str(e))
