"""User schemas"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema"""

    username: str = Field(..., min_length=3, max_length=255)
    email: EmailStr


class UserCreate(UserBase):
    """Schema for creating a user"""

    password: str = Field(..., min_length=8, max_length=72)


class UserResponse(UserBase):
    """Schema for user response (without sensitive data)"""

    id: str
    is_active: bool
    roles: list[str] = Field(default_factory=list)
    created_at: datetime
    last_login_at: datetime | None = None


class Identity(BaseModel):
    """What the identity provider hands to the token core"""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    display_name: str
    roles: tuple[str, ...] = ()


class ProfileResponse(BaseModel):
    """Caller profile derived from verified access token claims"""

    user_id: str
    username: str
    roles: list[str]
    token_id: str
    expires_at: datetime
