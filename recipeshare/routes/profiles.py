"""Profile endpoints for the Recipe Share API"""

import logging

from fastapi import APIRouter, Depends

from recipeshare.core.exceptions import DatabaseException, NotFoundException, RecipeShareException
from recipeshare.db.db_core import Database
from recipeshare.dependencies.auth import UserInfo, require_authentication
from recipeshare.dependencies.database import get_db
from recipeshare.models.requests import ProfileUpdate
from recipeshare.models.responses import ProfileResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Get the caller's profile"""
    try:
        profile = db.get_profile(user.user_id)
        if profile is None:
            raise NotFoundException("Profile not found")
        return ProfileResponse.model_validate(profile.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error getting profile {user.user_id}: {str(e)}")
        raise DatabaseException("Failed to retrieve profile", detail=str(e))


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile: ProfileUpdate,
    db: Database = Depends(get_db),
    user: UserInfo = Depends(require_authentication),
):
    """Create or update the caller's profile; email and verification come from the token"""
    try:
        saved = db.upsert_profile(
            user.user_id,
            email=user.email,
            full_name=profile.full_name,
            avatar_url=profile.avatar_url,
            is_verified=user.email_verified,
        )
        return ProfileResponse.model_validate(saved.model_dump())
    except RecipeShareException:
        raise
    except Exception as e:
        logger.error(f"Error saving profile {user.user_id}: {str(e)}")
        raise DatabaseException("Failed to save profile", detail=str(e))
