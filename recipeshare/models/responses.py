from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TagResponse(BaseModel):
    """Response model for tag data"""

    id: int = Field(..., description="Tag ID")
    name: str = Field(..., description="Tag name")

    class Config:
        from_attributes = True


class TagUsageResponse(BaseModel):
    """Response model for tag listings with usage counts"""

    id: int = Field(..., description="Tag ID")
    name: str = Field(..., description="Tag name")
    usage_count: int = Field(default=0, description="Number of recipes using this tag")

    class Config:
        from_attributes = True


class RecipeResponse(BaseModel):
    """Response model for a recipe as stored"""

    id: int = Field(..., description="Recipe ID")
    owner_id: str = Field(..., description="Owner user ID")
    title: str = Field(..., description="Recipe title")
    description: Optional[str] = Field(None, description="Recipe description")
    instructions: Optional[str] = Field(None, description="Recipe instructions")
    image_url: Optional[str] = Field(None, description="Recipe image URL")
    is_favorite: bool = Field(False, description="Owner's favorite flag")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    updated_at: datetime = Field(..., description="Last update time (UTC)")

    class Config:
        from_attributes = True


class ProfileResponse(BaseModel):
    """Response model for a user's display profile"""

    id: str = Field(..., description="User ID")
    email: Optional[str] = Field(None, description="Email address")
    full_name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")
    is_verified: bool = Field(False, description="Whether the user is verified")
    updated_at: Optional[datetime] = Field(None, description="Last update time (UTC)")

    class Config:
        from_attributes = True


class RecipeDetailResponse(BaseModel):
    """Response model for a single recipe with its tags and author"""

    recipe: RecipeResponse = Field(..., description="The recipe")
    tags: List[TagResponse] = Field(default_factory=list, description="Recipe tags")
    author: Optional[ProfileResponse] = Field(None, description="Owner profile")
    is_owner: bool = Field(False, description="Whether the caller owns the recipe")

    class Config:
        from_attributes = True


class GrantResponse(BaseModel):
    """Response model for a share grant"""

    id: int = Field(..., description="Grant ID")
    recipe_id: int = Field(..., description="Shared recipe ID")
    granted_by: str = Field(..., description="User who shared the recipe")
    grantee_email: Optional[str] = Field(None, description="Email the recipe is shared with")
    is_public: bool = Field(False, description="Whether the recipe is shared with everyone")
    created_at: Optional[datetime] = Field(None, description="Grant time (UTC)")

    class Config:
        from_attributes = True


class AccessResponse(BaseModel):
    """Response model for a visibility check"""

    recipe_id: int = Field(..., description="Recipe ID")
    can_view: bool = Field(..., description="Whether the caller may see the recipe")


class CacheStatusResponse(BaseModel):
    """Response model for the shared recipe cache status"""

    state: str = Field(..., description="Refresh state")
    version: int = Field(..., description="Version of the published snapshot")
    row_count: int = Field(..., description="Rows in the published snapshot")
    last_mode: Optional[str] = Field(None, description="Mode of the last successful refresh")
    last_refreshed_at: Optional[datetime] = Field(None, description="Time of the last successful refresh")
    last_error: Optional[str] = Field(None, description="Error of the last failed refresh")
    stale: bool = Field(False, description="Whether committed writes are not yet reflected")
    refresh_count: int = Field(0, description="Successful refreshes")
    failure_count: int = Field(0, description="Failed refreshes")
    exclusive_count: int = Field(0, description="Refreshes that fell back to exclusive mode")
    skipped_count: int = Field(0, description="Refresh requests already covered by another refresh")

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    """Generic response model for simple messages"""

    message: str = Field(..., description="Response message")

    class Config:
        from_attributes = True


class ErrorResponse(BaseModel):
    """Response model for error messages"""

    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")

    class Config:
        from_attributes = True
