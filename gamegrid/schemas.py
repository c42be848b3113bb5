"""Pydantic schemas for request/response validation and serialization.

Required-field checks for users live in the service layer so that a missing
field produces the same message the clients already handle; the schemas only
reject values of the wrong shape.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .config import settings
from .models import GameStatus
from .utils import normalize_email


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ==================== User Schemas ====================

class UserOut(BaseModel):
    """Public user projection, never includes the password hash."""
    id: str
    name: str
    email: str
    joinDate: datetime | None = None


class UserRegister(BaseModel):
    """Schema for user registration."""
    name: str | None = Field(None, max_length=settings.USER_NAME_MAX_LENGTH)
    email: EmailStr | None = Field(None, max_length=settings.USER_EMAIL_MAX_LENGTH)
    password: str | None = None

    @field_validator('name', mode='before')
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator('email', mode='before')
    @classmethod
    def normalize(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return normalize_email(v) if isinstance(v, str) else v

    @field_validator('password', mode='before')
    @classmethod
    def empty_password(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator('password')
    @classmethod
    def password_fits_bcrypt(cls, v: str | None) -> str | None:
        # bcrypt reads at most 72 bytes, so the cap is on the UTF-8 encoding
        if v is not None and len(v.encode("utf-8")) > settings.PASSWORD_MAX_LENGTH:
            raise ValueError(f"Password must be at most {settings.PASSWORD_MAX_LENGTH} bytes")
        return v


class UserUpdate(UserRegister):
    """Partial profile update; every field is optional."""


class UserLogin(BaseModel):
    """Login credentials. Email is a lookup key here, not validated as an address."""
    email: str | None = None
    password: str | None = None


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    userId: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    user: UserOut


class UserResponse(BaseModel):
    success: bool = True
    data: UserOut


class PaginatedUserResponse(BaseModel):
    """Paginated response with user items and metadata."""
    success: bool = True
    data: list[UserOut]
    total: int
    page: int
    limit: int
    pages: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    modifiedCount: int | None = None


class VerifyTokenResponse(BaseModel):
    valid: bool = True
    user: dict[str, Any]


# ==================== Game Schemas ====================

class GameBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    location: str | None = None
    date: str | None = None
    fee: float | None = Field(None, ge=0)
    status: GameStatus | None = None
    icon: str | None = None
    description: str | None = None
    maxParticipants: int | None = Field(None, ge=1)


class GameCreate(GameBase):
    title: str = Field(..., min_length=1)


class GameUpdate(GameBase):
    """Editable game fields. The roster and its counter only change via join/leave."""
    title: str | None = Field(None, min_length=1)


class GameStats(BaseModel):
    upcoming: int = 0
    ongoing: int = 0
    past: int = 0
    total: int = 0


# ==================== Post Schemas ====================

class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)

    @field_validator('title')
    @classmethod
    def strip_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty or only whitespace")
        return v.strip()


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = Field(None, min_length=1)
