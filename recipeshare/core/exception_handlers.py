"""Global exception handlers for the FastAPI application"""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from recipeshare.core.exceptions import RecipeShareException
from recipeshare.models.responses import ErrorResponse

logger = logging.getLogger(__name__)


async def recipe_share_exception_handler(request: Request, exc: RecipeShareException) -> JSONResponse:
    """Handle custom Recipe Share exceptions"""
    if exc.status_code >= 500:
        logger.error(f"Recipe Share exception: {exc.message} - {exc.detail}")
    else:
        logger.warning(f"Recipe Share exception: {exc.message} - {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            detail=exc.detail
        ).model_dump(),
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle Starlette HTTPExceptions"""
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error="HTTP Error",
            detail=str(exc.detail)
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors"""
    logger.warning(f"Validation error: {exc.errors()}")

    # Format validation errors in a user-friendly way
    error_details = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        message = error["msg"]
        error_details.append(f"{field}: {message}")

    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="Validation Error",
            detail="; ".join(error_details)
        ).model_dump(),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions"""
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal Server Error",
            detail="An unexpected error occurred"
        ).model_dump(),
    )
