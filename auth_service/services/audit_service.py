"""Audit service for security events logging"""

from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.config import logger
from auth_service.models.audit_log import AuditLog


class AuditService:
    """Service for audit logging"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def log_event(
        self,
        event_type: str,
        success: bool,
        user_id: str | None = None,
        event_data: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        error_message: str | None = None,
    ) -> AuditLog:
        """
        Log an audit event

        Args:
            event_type: Type of event (login_success, login_failed, etc.)
            success: Whether the event was successful
            user_id: User ID (if applicable)
            event_data: Additional event data
            ip_address: Client IP address
            user_agent: Client user agent
            error_message: Error message (if failed)

        Returns:
            Created AuditLog record
        """
        audit_log = AuditLog(
            user_id=user_id,
            event_type=event_type,
            event_data=event_data,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            error_message=error_message,
        )

        async with self._session_factory() as db:
            async with db.begin():
                db.add(audit_log)

        # Also log to application logs
        log_level = logger.info if success else logger.warning
        log_level(
            f"Audit: {event_type} - {'SUCCESS' if success else 'FAILED'}",
            extra={
                "event_type": event_type,
                "success": success,
                "user_id": user_id,
                "ip_address": ip_address,
            },
        )

        return audit_log

    async def log_login_success(
        self,
        user_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        """Log successful login"""
        return await self.log_event(
            event_type="login_success",
            success=True,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_login_failed(
        self,
        username: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        """Log failed login attempt"""
        return await self.log_event(
            event_type="login_failed",
            success=False,
            user_id=None,  # User not authenticated
            event_data={"username": username},
            ip_address=ip_address,
            user_agent=user_agent,
            error_message="Invalid credentials",
        )

    async def log_token_refresh(
        self,
        user_id: str | None,
        success: bool,
        ip_address: str | None = None,
        user_agent: str | None = None,
        reason: str | None = None,
    ) -> AuditLog:
        """Log token refresh attempt"""
        return await self.log_event(
            event_type="token_refresh",
            success=success,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            error_message=reason,
        )

    async def log_token_revoke(
        self,
        ip_address: str | None = None,
        user_agent: str | None = None,
        revoked: bool = True,
    ) -> AuditLog:
        """Log token revocation"""
        return await self.log_event(
            event_type="token_revoke",
            success=True,
            event_data={"state_changed": revoked},
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_security_incident(
        self,
        incident_type: str,
        user_id: str | None = None,
        event_data: dict | None = None,
        ip_address: str | None = None,
    ) -> AuditLog:
        """Log security incident (e.g., refresh token reuse)"""
        return await self.log_event(
            event_type=f"security_incident_{incident_type}",
            success=False,
            user_id=user_id,
            event_data=event_data,
            ip_address=ip_address,
            error_message=f"Security incident: {incident_type}",
        )

    async def record_refresh_token_reuse(self, event) -> None:
        """Reuse handler for the refresh token engine"""
        await self.log_security_incident(
            incident_type="refresh_token_reuse",
            user_id=event.subject_id,
            event_data={
                "token_id": event.token_id,
                "revoked_count": event.revoked_count,
            },
            ip_address=event.source_ip,
        )

    async def list_events(self, event_type: str | None = None) -> list[AuditLog]:
        """Audit records, oldest first, optionally filtered by type"""
        async with self._session_factory() as db:
            query = select(AuditLog).order_by(AuditLog.created_at)
            if event_type is not None:
                query = query.where(AuditLog.event_type == event_type)
            result = await db.execute(query)
            return list(result.scalars().all())
