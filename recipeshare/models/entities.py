"""Source-of-truth entities as read back from storage.

These are immutable so that a loaded ``SourceState`` can be handed to the
projection builder without anyone mutating it half way through a rebuild.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityKind(str, Enum):
    """Source tables whose writes must reach the shared recipe cache"""

    RECIPE = "recipe"
    GRANT = "grant"
    TAG_LINK = "tag_link"
    PROFILE = "profile"
    TAG = "tag"


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lower-case and trim an email address; blank values become None."""
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: bool = False
    updated_at: Optional[datetime] = None


class Recipe(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    owner_id: str
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    image_url: Optional[str] = None
    is_favorite: bool = False
    created_at: datetime
    updated_at: datetime


class Tag(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    created_at: Optional[datetime] = None


class RecipeTagLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipe_id: int
    tag_id: int
    created_at: Optional[datetime] = None


class ShareGrant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    recipe_id: int
    granted_by: str
    grantee_email: Optional[str] = None
    is_public: bool = False
    created_at: Optional[datetime] = None

    @field_validator("grantee_email")
    @classmethod
    def _lower_email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value)


class Requester(BaseModel):
    """Identity presented with every read"""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    email: Optional[str] = None


class SourceState(BaseModel):
    """Everything the cache projection is built from, read in one transaction"""

    model_config = ConfigDict(frozen=True)

    recipes: List[Recipe] = Field(default_factory=list)
    grants: List[ShareGrant] = Field(default_factory=list)
    links: List[RecipeTagLink] = Field(default_factory=list)
    tags: List[Tag] = Field(default_factory=list)
    profiles: List[Profile] = Field(default_factory=list)


class RecipeDetail(BaseModel):
    """A single recipe as shown to someone allowed to see it"""

    model_config = ConfigDict(frozen=True)

    recipe: Recipe
    tags: List[Tag] = Field(default_factory=list)
    author: Optional[Profile] = None
    is_owner: bool = False
