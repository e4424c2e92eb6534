"""Recipe endpoints for the Recipe Share API"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from recipeshare.cache.queries import OwnedRecipePage, SharedRecipeQueries
from recipeshare.core.config import settings
from recipeshare.core.exceptions import (
    DatabaseException,
    NotFoundException,
    RecipeShareException,
)
from recipeshare.db.db_core import Database
from recipeshare.dependencies.auth import UserInfo, require_authentication
from recipeshare.dependencies.database import get_db, get_shared_queries
from recipeshare.models.requests import FavoriteUpdate, RecipeCreate, RecipeTagAdd, RecipeUpdate
from recipeshare.models.responses import (
    AccessResponse,
    MessageResponse,
    RecipeDetailResponse,
    RecipeResponse,
    TagResponse,
)
from recipeshare.routes.shared import parse_tag_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes", tags=["recipes"])


@router.get("", response_model=OwnedRecipePage)
async def list_my_recipes(
    tags: Optional[str] = Query(None, description="Comma separated tag ids; any of them matches"),
    q: Optional[str] = Query(None, description="Search title and description"),
    limit: int = Query(settings.default_page_size, description="Page size"),
    offset: int = Query(0, description="Rows to skip"),
    queries: SharedRecipeQueries = Depends(get_shared_queries),
    user: UserInfo = Depends(require_authentication),
):
    """List the caller's own recipes, favorites first"""
    try:
        return queries.list_owned(
            user.user_id,
            tag_filter=parse_tag_ids(tags),
            search_term=q,
            limit=limit,
            offset=offset,
        )
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error listing recipes for {user.user_id}: {str(e)}")
        raise DatabaseException("Failed to list recipes", detail=str(e))


@router.post("", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def create_recipe(
    recipe: RecipeCreate,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Create a new recipe owned by the caller"""
    try:
        logger.info(f"Creating recipe '{recipe.title}' for {user.user_id}")
        created = db.create_recipe(
            user.user_id,
            recipe.title,
            description=recipe.description,
            instructions=recipe.instructions,
            image_url=recipe.image_url,
            is_favorite=recipe.is_favorite,
        )
        return RecipeResponse.model_validate(created.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error creating recipe: {str(e)}")
        raise DatabaseException("Failed to create recipe", detail=str(e))


@router.get("/{recipe_id}", response_model=RecipeDetailResponse)
async def get_recipe(
    recipe_id: int,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Get a recipe the caller owns or that is shared with them"""
    try:
        detail = db.get_recipe_detail(recipe_id, user.as_requester())
        return RecipeDetailResponse.model_validate(detail.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error getting recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to retrieve recipe", detail=str(e))


@router.put("/{recipe_id}", response_model=RecipeResponse)
async def update_recipe(
    recipe_id: int,
    recipe: RecipeUpdate,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Update a recipe (owner only)"""
    try:
        logger.info(f"Updating recipe {recipe_id}")
        updated = db.update_recipe(recipe_id, user.user_id, recipe.model_dump(exclude_unset=True))
        return RecipeResponse.model_validate(updated.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error updating recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to update recipe", detail=str(e))


@router.delete("/{recipe_id}", response_model=MessageResponse)
async def delete_recipe(
    recipe_id: int,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Delete a recipe with its tags and share grants (owner only)"""
    try:
        logger.info(f"Deleting recipe {recipe_id}")
        if not db.delete_recipe(recipe_id, user.user_id):
            raise NotFoundException(f"Recipe with ID {recipe_id} not found")
        return MessageResponse(message="Recipe deleted successfully")
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error deleting recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to delete recipe", detail=str(e))


@router.put("/{recipe_id}/favorite", response_model=RecipeResponse)
async def set_favorite(
    recipe_id: int,
    favorite: FavoriteUpdate,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Mark or unmark a recipe as a favorite (owner only)"""
    try:
        updated = db.set_favorite(recipe_id, user.user_id, favorite.is_favorite)
        return RecipeResponse.model_validate(updated.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error setting favorite on recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to update favorite", detail=str(e))


@router.get("/{recipe_id}/access", response_model=AccessResponse)
async def check_access(
    recipe_id: int,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Whether the caller may see a recipe"""
    try:
        return AccessResponse(
            recipe_id=recipe_id, can_view=db.can_view(recipe_id, user.as_requester())
        )
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error checking access to recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to check recipe access", detail=str(e))


@router.post(
    "/{recipe_id}/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED
)
async def add_recipe_tag(
    recipe_id: int,
    tag: RecipeTagAdd,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Tag a recipe, creating the tag on first use (owner only)"""
    try:
        added = db.add_recipe_tag(recipe_id, tag.name, user.user_id)
        return TagResponse(id=added.id, name=added.name)
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error tagging recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to add tag to recipe", detail=str(e))


@router.delete("/{recipe_id}/tags/{tag_id}", response_model=MessageResponse)
async def remove_recipe_tag(
    recipe_id: int,
    tag_id: int,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Remove a tag from a recipe (owner only)"""
    try:
        if not db.remove_recipe_tag(recipe_id, tag_id, user.user_id):
            raise NotFoundException(f"Tag {tag_id} is not on recipe {recipe_id}")
        return MessageResponse(message="Tag removed from recipe")
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error removing tag {tag_id} from recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to remove tag from recipe", detail=str(e))
