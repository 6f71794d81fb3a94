"""Pydantic schemas"""

from auth_service.schemas.token import (
    AccessTokenClaims,
    LoginRequest,
    MessageResponse,
    MintedAccessToken,
    RefreshTokenRequest,
    TokenResponse,
    TokenType,
)
from auth_service.schemas.user import Identity, ProfileResponse, UserCreate, UserResponse

__all__ = [
    # Token
    "TokenType",
    "AccessTokenClaims",
    "MintedAccessToken",
    "LoginRequest",
    "RefreshTokenRequest",
    "TokenResponse",
    "MessageResponse",
    # User
    "UserCreate",
    "UserResponse",
    "Identity",
    "ProfileResponse",
]
