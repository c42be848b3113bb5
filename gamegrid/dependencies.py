"""FastAPI dependencies for authentication and authorization."""

from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import PyMongoError

from .auth import check_ownership, verify_token
from .crud import select_user
from .db import Database, get_database
from .errors import InternalError, UnauthorizedError
from .logger import logger


# ==================== Authentication Dependencies ====================

# auto_error=False: a missing header is reported by verify_token with our own message
security = HTTPBearer(auto_error=False)


async def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict[str, Any]:
    """Verify the bearer token and return its claims. No database lookup."""
    token = credentials.credentials if credentials else None
    return verify_token(token)


async def get_current_user(
    claims: dict[str, Any] = Depends(get_current_claims),
    db: Database = Depends(get_database),
) -> dict[str, Any]:
    """Like get_current_claims, but also require the account to still exist."""
    try:
        user = await select_user(db, claims["userId"])
    except PyMongoError as e:
        logger.error(f"User lookup failed during authentication: {e}", exc_info=True)
        raise InternalError("Authentication error", error=str(e)) from e

    if user is None:
        logger.warning(f"Token for missing user: id={claims['userId']}")
        raise UnauthorizedError("User not found")
    return user


# ==================== Authorization Dependencies ====================

async def require_profile_owner(
    user_id: str,
    claims: dict[str, Any] = Depends(get_current_claims),
) -> dict[str, Any]:
    """Only the user named in the path may modify that profile."""
    check_ownership(claims, user_id)
    return claims
