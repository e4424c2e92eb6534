"""Share grant endpoints for the Recipe Share API"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from recipeshare.core.exceptions import (
    DatabaseException,
    RecipeShareException,
)
from recipeshare.db.grant_store import ShareGrantStore
from recipeshare.dependencies.auth import UserInfo, require_authentication
from recipeshare.dependencies.database import get_grant_store
from recipeshare.models.requests import GrantCreate
from recipeshare.models.responses import GrantResponse, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["grants"])


@router.post(
    "/recipes/{recipe_id}/grants",
    response_model=GrantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_grant(
    recipe_id: int,
    grant: GrantCreate,
    grants: ShareGrantStore = Depends(get_grant_store),
    user: UserInfo = Depends(require_authentication),
):
    """Share a recipe with an email address or with everyone (owner only)"""
    try:
        logger.info(f"User {user.user_id} sharing recipe {recipe_id}")
        created = grants.create_grant(
            recipe_id, user.user_id, grantee_email=grant.email, is_public=grant.is_public
        )
        return GrantResponse.model_validate(created.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error sharing recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to share recipe", detail=str(e))


@router.get("/recipes/{recipe_id}/grants", response_model=List[GrantResponse])
async def list_grants(
    recipe_id: int,
    grants: ShareGrantStore = Depends(get_grant_store),
    user: UserInfo = Depends(require_authentication),
):
    """List who a recipe is shared with (owner only)"""
    try:
        return [
            GrantResponse.model_validate(grant.model_dump())
            for grant in grants.list_grants(recipe_id, user.user_id)
        ]
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error listing grants for recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to list share grants", detail=str(e))


@router.delete("/recipes/{recipe_id}/grants", response_model=MessageResponse)
async def unshare_recipe(
    recipe_id: int,
    email: Optional[str] = Query(None, description="Stop sharing with this email address"),
    public: bool = Query(False, description="Remove the public share"),
    grants: ShareGrantStore = Depends(get_grant_store),
    user: UserInfo = Depends(require_authentication),
):
    """Stop sharing a recipe with an email address, or make it private again"""
    try:
        if public:
            removed = grants.make_private(recipe_id, user.user_id)
            return MessageResponse(message=f"Removed {removed} public share(s)")
        grants.revoke_grant_for_email(recipe_id, email, user.user_id)
        return MessageResponse(message="Share removed")
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error unsharing recipe {recipe_id}: {str(e)}")
        raise DatabaseException("Failed to remove share", detail=str(e))


@router.delete("/grants/{grant_id}", response_model=MessageResponse)
async def revoke_grant(
    grant_id: int,
    grants: ShareGrantStore = Depends(get_grant_store),
    user: UserInfo = Depends(require_authentication),
):
    """Revoke a grant by id (only the user who made it)"""
    try:
        grants.revoke_grant(grant_id, user.user_id)
        return MessageResponse(message="Share grant revoked")
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error revoking grant {grant_id}: {str(e)}")
        raise DatabaseException("Failed to revoke share grant", detail=str(e))
