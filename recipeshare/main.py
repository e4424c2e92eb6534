"""
FastAPI application for the Recipe Share API

Serves recipe authoring, sharing and the cached shared-recipe listings.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from recipeshare.core.database import shutdown_services
from recipeshare.core.config import settings
from recipeshare.core.exceptions import RecipeShareException
from recipeshare.core.exception_handlers import (
    recipe_share_exception_handler,
    starlette_http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from recipeshare.models.responses import MessageResponse
from recipeshare.routes import admin, grants, profiles, recipes, shared, tags

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class CORSHeaderMiddleware(BaseHTTPMiddleware):
    """Add CORS headers to all responses"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization,Accept"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application"""
    # Startup
    logger.info("Starting Recipe Share API")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Database backend: {settings.db_backend}")

    yield

    # Shutdown
    logger.info("Shutting down Recipe Share API")
    shutdown_services()


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    debug=settings.debug,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(CORSHeaderMiddleware)

# Add exception handlers
app.add_exception_handler(RecipeShareException, recipe_share_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)

app.include_router(shared.router)
app.include_router(recipes.router)
app.include_router(grants.router)
app.include_router(tags.router)
app.include_router(profiles.router)
app.include_router(admin.router)


# Root endpoint
@app.get("/", response_model=MessageResponse)
async def root():
    """Root endpoint returning API information"""
    return MessageResponse(
        message=f"Recipe Share API v{settings.api_version} - Environment: {settings.environment}"
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# For local development
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server...")
    uvicorn.run(
        "recipeshare.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
