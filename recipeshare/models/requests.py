from typing import Optional

from pydantic import BaseModel, Field


class RecipeCreate(BaseModel):
    """Request model for creating a recipe"""

    title: str = Field(..., min_length=1, max_length=200, description="Recipe title")
    description: Optional[str] = Field(None, description="Short recipe description")
    instructions: Optional[str] = Field(None, description="Recipe instructions")
    image_url: Optional[str] = Field(None, description="Recipe image URL")
    is_favorite: bool = Field(False, description="Mark the recipe as a favorite")


class RecipeUpdate(BaseModel):
    """Request model for updating a recipe; omitted fields are left unchanged, null clears one"""

    title: Optional[str] = Field(None, min_length=1, max_length=200, description="Recipe title")
    description: Optional[str] = Field(None, description="Short recipe description")
    instructions: Optional[str] = Field(None, description="Recipe instructions")
    image_url: Optional[str] = Field(None, description="Recipe image URL")


class FavoriteUpdate(BaseModel):
    """Request model for toggling the favorite flag"""

    is_favorite: bool = Field(..., description="Whether the recipe is a favorite")


class GrantCreate(BaseModel):
    """Request model for sharing a recipe with an email address or the public"""

    email: Optional[str] = Field(None, description="Email address to share with")
    is_public: bool = Field(False, description="Share with everyone")


class TagCreate(BaseModel):
    """Request model for creating a tag"""

    name: str = Field(..., min_length=1, max_length=100, description="Tag name")


class RecipeTagAdd(BaseModel):
    """Request model for tagging a recipe; the tag is created if it does not exist"""

    name: str = Field(..., min_length=1, max_length=100, description="Tag name")


class ProfileUpdate(BaseModel):
    """Request model for the caller's display profile"""

    full_name: Optional[str] = Field(None, max_length=200, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")
