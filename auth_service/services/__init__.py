"""Service modules"""

from auth_service.services.access_token_minter import AccessTokenMinter
from auth_service.services.audit_service import AuditService
from auth_service.services.auth_service import AuthService
from auth_service.services.identity_provider import IdentityProvider
from auth_service.services.refresh_token_engine import (
    RefreshTokenEngine,
    RefreshTokenReuseDetected,
    RotationResult,
)
from auth_service.services.user_service import UserService

__all__ = [
    "AccessTokenMinter",
    "AuditService",
    "AuthService",
    "IdentityProvider",
    "RefreshTokenEngine",
    "RefreshTokenReuseDetected",
    "RotationResult",
    "UserService",
]
