from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
import re

from telem.db.core import UserRole, UserStatus
from telem.models.base import ApiModel, PatchModel


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def _validate_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not re.match(EMAIL_PATTERN, v):
        raise ValueError('Invalid email format')
    return v.lower().strip()


# ===== USER PYDANTIC MODELS =====

class UserCreate(ApiModel):
    username: str = Field(..., min_length=3, max_length=100, description="Username (3-100 characters)")
    password: str = Field(..., min_length=8, description="Password (minimum 8 characters)")
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., description="User's email address")
    phone: str = Field(..., min_length=1, max_length=50)
    status: UserStatus = UserStatus.ACTIVE

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not re.match(r'^[a-zA-Z0-9_.-]+$', v):
            raise ValueError('Username can only contain letters, numbers, dots, hyphens, and underscores')
        return v.lower().strip()


class UserUpdate(PatchModel):
    """Update user profile - all fields optional"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=1, max_length=50)
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)


class UserResponse(ApiModel):
    """User data returned to client - no password hash"""
    id: int
    username: str
    name: str
    email: str
    phone: str
    role: UserRole
    status: UserStatus
    calculators_count: int
    created_at: datetime
    updated_at: datetime


class UserLogin(ApiModel):
    username: str
    password: str

    @field_validator('username')
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.lower().strip()


class TokenResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
