import logging

from fastapi import APIRouter, Depends

from recipeshare.cache.refresh import RefreshCoordinator
from recipeshare.dependencies.auth import UserInfo, require_admin
from recipeshare.dependencies.database import get_refresh_coordinator
from recipeshare.models.responses import CacheStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/cache/status", response_model=CacheStatusResponse)
async def cache_status(
    user: UserInfo = Depends(require_admin),
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
):
    """Report the state of the shared recipe cache. Requires admin access."""
    return CacheStatusResponse(**coordinator.status().model_dump(mode="json"))


@router.post("/cache/refresh", response_model=CacheStatusResponse)
async def refresh_cache(
    user: UserInfo = Depends(require_admin),
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
):
    """
    Rebuild the shared recipe cache now.
    Responds 503 if the rebuild fails; the previous cache stays in place.
    Requires admin access.
    """
    logger.info(f"Manual cache refresh requested by {user.user_id}")
    coordinator.refresh()
    return CacheStatusResponse(**coordinator.status().model_dump(mode="json"))
