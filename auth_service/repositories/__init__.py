"""Persistence ports and implementations"""

from auth_service.repositories.refresh_token_repository import (
    RefreshTokenRepository,
    SqlAlchemyRefreshTokenRepository,
)

__all__ = [
    "RefreshTokenRepository",
    "SqlAlchemyRefreshTokenRepository",
]
