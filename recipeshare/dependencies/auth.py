import logging
import time
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from recipeshare.core.config import settings
from recipeshare.models.entities import Requester, normalize_email

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)

# Cache for the identity provider's JWKS (JSON Web Key Set)
_jwks_cache: Dict[str, Any] = {}
_jwks_cache_time: float = 0
JWKS_CACHE_DURATION = 3600  # 1 hour

GROUP_CLAIMS = ("groups", "cognito:groups", "roles")


class UserInfo:
    """User information extracted from a validated JWT"""

    def __init__(self, user_id: str, email: Optional[str] = None,
                 email_verified: bool = False, groups: Optional[list] = None,
                 claims: Optional[Dict[str, Any]] = None):
        self.user_id = user_id
        self.email = normalize_email(email)
        self.email_verified = email_verified
        self.groups = groups or []
        self.claims = claims or {}

    def as_requester(self) -> Requester:
        return Requester(id=self.user_id, email=self.email)


def get_jwks() -> Dict[str, Any]:
    """Fetch and cache the JWKS used for JWT validation"""
    global _jwks_cache, _jwks_cache_time

    current_time = time.time()
    if _jwks_cache and (current_time - _jwks_cache_time) < JWKS_CACHE_DURATION:
        return _jwks_cache

    if not settings.jwks_url:
        raise ValueError("JWKS_URL is not configured")

    try:
        response = requests.get(settings.jwks_url, timeout=5)
        response.raise_for_status()
        _jwks_cache = response.json()
        _jwks_cache_time = current_time
        logger.info(f"Fetched JWKS from {settings.jwks_url}")
        return _jwks_cache
    except Exception as e:
        logger.error(f"Failed to fetch JWKS: {e}")
        if _jwks_cache:
            return _jwks_cache
        raise


def get_signing_key(token: str) -> Any:
    """Get the signing key for a JWT token from the JWKS"""
    try:
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")
        if not kid:
            raise ValueError("Token missing 'kid' header")

        jwks = get_jwks()
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return jwt.algorithms.RSAAlgorithm.from_jwk(key)

        raise ValueError(f"Unable to find signing key for kid: {kid}")
    except Exception as e:
        logger.error(f"Error getting signing key: {e}")
        raise


def validate_jwt_token(token: str) -> Optional[Dict[str, Any]]:
    """Validate a JWT token and return its claims, or None if it is not acceptable"""
    try:
        signing_key = get_signing_key(token)

        claims = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256"],
            issuer=settings.jwt_issuer or None,
            audience=settings.jwt_audience or None,
            options={
                "verify_aud": bool(settings.jwt_audience),
                "verify_iss": bool(settings.jwt_issuer),
                "verify_exp": True,
            },
        )
        return claims

    except jwt.ExpiredSignatureError:
        logger.warning("JWT token has expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None
    except Exception as e:
        logger.error(f"Error validating JWT: {e}")
        return None


def _groups_from_claims(claims: Dict[str, Any]) -> list:
    for claim in GROUP_CLAIMS:
        value = claims.get(claim)
        if value:
            return value if isinstance(value, list) else value.split(",")
    return []


def get_user_from_jwt(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[UserInfo]:
    """Extract user information from JWT Bearer token"""
    if not credentials:
        logger.debug("No authorization credentials provided")
        return None

    claims = validate_jwt_token(credentials.credentials)
    if not claims:
        return None

    user_id = claims.get("sub")
    if not user_id:
        logger.warning("No 'sub' claim found in JWT")
        return None

    groups = _groups_from_claims(claims)
    logger.debug(f"Authenticated user: {user_id}, groups: {groups}")

    return UserInfo(
        user_id=user_id,
        email=claims.get("email"),
        email_verified=bool(claims.get("email_verified", False)),
        groups=groups,
        claims=claims,
    )


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[UserInfo]:
    """Get current user information if available (optional authentication)"""
    return get_user_from_jwt(request, credentials)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> UserInfo:
    """Get current user information (required authentication)"""
    user = await get_current_user_optional(request, credentials)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_authentication(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> UserInfo:
    """Require authentication - raises exception if user is not authenticated"""
    return await get_current_user(request, credentials)


def is_admin(user: UserInfo) -> bool:
    """Check if user is an admin"""
    return settings.admin_group in user.groups


async def require_admin(user: UserInfo = Depends(require_authentication)) -> UserInfo:
    """Require admin access - raises exception if user is not an admin"""
    if not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
