"""Database models"""

from auth_service.models.audit_log import AuditLog
from auth_service.models.database import (
    Base,
    close_db,
    create_engine,
    create_session_maker,
    init_db,
)
from auth_service.models.refresh_token import RefreshToken
from auth_service.models.user import Role, User, user_roles

__all__ = [
    "Base",
    "create_engine",
    "create_session_maker",
    "init_db",
    "close_db",
    "User",
    "Role",
    "user_roles",
    "RefreshToken",
    "AuditLog",
]
