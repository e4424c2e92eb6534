"""Custom exceptions for the Recipe Share API"""

from typing import Optional


class RecipeShareException(Exception):
    """Base exception for Recipe Share"""

    def __init__(self, message: str, status_code: int = 500, detail: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)


class DatabaseException(RecipeShareException):
    """Database-related exceptions"""

    def __init__(self, message: str = "Database operation failed", detail: Optional[str] = None):
        super().__init__(message, status_code=500, detail=detail)


class ValidationException(RecipeShareException):
    """Validation-related exceptions"""

    def __init__(self, message: str = "Validation failed", detail: Optional[str] = None):
        super().__init__(message, status_code=400, detail=detail)


class NotFoundException(RecipeShareException):
    """Resource not found exceptions"""

    def __init__(self, message: str = "Resource not found", detail: Optional[str] = None):
        super().__init__(message, status_code=404, detail=detail)


class AuthenticationException(RecipeShareException):
    """Authentication-related exceptions"""

    def __init__(self, message: str = "Authentication failed", detail: Optional[str] = None):
        super().__init__(message, status_code=401, detail=detail)


class PermissionDeniedException(RecipeShareException):
    """Raised when a non-owner tries to change a recipe or its grants"""

    def __init__(self, message: str = "Permission denied", detail: Optional[str] = None):
        super().__init__(message, status_code=403, detail=detail)


class ConflictException(RecipeShareException):
    """Resource conflict exceptions"""

    def __init__(self, message: str = "Resource conflict", detail: Optional[str] = None):
        super().__init__(message, status_code=409, detail=detail)


class DuplicateGrantException(ConflictException):
    """The grantee already has a grant for this recipe"""

    def __init__(
        self, message: str = "Recipe is already shared with this grantee", detail: Optional[str] = None
    ):
        super().__init__(message, detail=detail)


class RefreshFailedException(RecipeShareException):
    """The shared recipe cache could not be rebuilt"""

    def __init__(self, message: str = "Cache refresh failed", detail: Optional[str] = None):
        super().__init__(message, status_code=503, detail=detail)
