"""Authentication utilities: password hashing, JWT issuance/verification and ownership checks."""

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from .config import settings
from .errors import ForbiddenError, InternalError, UnauthorizedError


# ==================== Password Hashing ====================

def hash_password(password: str) -> str:
    """Hash a plain text password using bcrypt for secure storage."""
    # bcrypt requires bytes and returns bytes
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    # Return as string for database storage
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a stored hash. A malformed hash never matches."""
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except (ValueError, TypeError, AttributeError):
        return False


# ==================== JWT Token Management ====================

class TokenConfigurationError(Exception):
    """Raised when no signing secret is configured."""


class TokenExpired(Exception):
    pass


class TokenInvalid(Exception):
    pass


class TokenVerificationFailed(Exception):
    pass


def _signing_key() -> str:
    if not settings.JWT_SECRET_KEY:
        raise TokenConfigurationError("JWT_SECRET_KEY is not configured")
    return settings.JWT_SECRET_KEY


def create_access_token(claims: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Sign ``claims`` into a JWT with ``iat`` and ``exp`` set.

    Defaults to JWT_EXPIRATION_HOURS. Raises TokenConfigurationError when the
    signing secret is missing; an unsigned token is never produced.
    """
    key = _signing_key()
    issued_at = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.JWT_EXPIRATION_HOURS)

    to_encode = dict(claims)
    to_encode.update({"iat": issued_at, "exp": issued_at + expires_delta})
    return jwt.encode(to_encode, key, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry of ``token`` and return its claims.

    Raises:
        TokenConfigurationError: no signing secret configured
        TokenExpired: ``exp`` is in the past
        TokenInvalid: bad signature or malformed token
        TokenVerificationFailed: anything else (bad claims, no ``userId``)
    """
    key = _signing_key()
    try:
        payload = jwt.decode(token, key, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenExpired(str(e)) from e
    except JWTClaimsError as e:
        raise TokenVerificationFailed(str(e)) from e
    except JWTError as e:
        raise TokenInvalid(str(e)) from e

    if not payload.get("userId"):
        raise TokenVerificationFailed("Missing userId in token")
    return payload


def verify_token(token: str | None) -> dict[str, Any]:
    """Map token failures onto the API error taxonomy."""
    if not token:
        raise UnauthorizedError("Access token required")
    try:
        return decode_access_token(token)
    except TokenConfigurationError as e:
        raise InternalError("Server configuration error", error=str(e)) from e
    except TokenExpired as e:
        raise UnauthorizedError("Token expired") from e
    except TokenInvalid as e:
        raise UnauthorizedError("Invalid token") from e
    except TokenVerificationFailed as e:
        raise ForbiddenError("Token verification failed", error=str(e)) from e


# ==================== Ownership ====================

def check_ownership(claims: dict[str, Any], owner_id: Any) -> None:
    """Allow the call only when the token's user owns the target resource."""
    if str(claims.get("userId")) != str(owner_id):
        raise ForbiddenError("You can only modify your own resource")
