"""Authentication service: client-facing login, refresh and revoke"""

import asyncio
from typing import Awaitable

from sqlalchemy.exc import SQLAlchemyError

from auth_service.core.config import logger
from auth_service.core.errors import InvalidCredential, StoreUnavailable
from auth_service.core.result import Result
from auth_service.schemas.token import TokenResponse
from auth_service.schemas.user import Identity
from auth_service.services.access_token_minter import AccessTokenMinter
from auth_service.services.audit_service import AuditService
from auth_service.services.identity_provider import IdentityProvider
from auth_service.services.refresh_token_engine import RefreshTokenEngine


class AuthService:
    """
    Orchestrates identity checks, the token engine and the audit trail

    Audit writes are best effort: once the engine has committed a state
    change the caller always gets its outcome, even if the audit insert fails.
    """

    def __init__(
        self,
        engine: RefreshTokenEngine,
        minter: AccessTokenMinter,
        identity_provider: IdentityProvider,
        audit: AuditService,
        timeout_seconds: float = 5.0,
    ):
        """
        Args:
            engine: Refresh token engine
            minter: Access token minter
            identity_provider: Credential checks
            audit: Audit trail
            timeout_seconds: Bound on identity provider calls
        """
        self._engine = engine
        self._minter = minter
        self._identity_provider = identity_provider
        self._audit = audit
        self._timeout_seconds = timeout_seconds

    async def login(
        self,
        username: str,
        password: str,
        ip_address: str,
        user_agent: str | None = None,
    ) -> Result[TokenResponse]:
        """
        Verify credentials and issue an access/refresh token pair

        Args:
            username: Username or email
            password: Plain text password
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            Result with TokenResponse, InvalidCredential or StoreUnavailable
        """
        try:
            identity = await self._authenticate(username, password)
        except StoreUnavailable as e:
            logger.error(f"Identity provider unavailable during login: {e}")
            return Result.failure(e)

        if identity is None:
            await self._record(
                self._audit.log_login_failed(
                    username=username,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            return Result.failure(InvalidCredential())

        issued = await self._engine.issue(identity.subject_id, ip_address)
        if not issued.ok:
            return Result.failure(issued.error)

        refresh_token = issued.value
        access_token = self._minter.mint(
            identity.subject_id,
            identity.display_name,
            identity.roles,
            now=refresh_token.created_at,
        )

        await self._record(
            self._audit.log_login_success(
                user_id=identity.subject_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

        logger.info(
            f"Login successful: user={identity.subject_id}",
            extra={"user_id": identity.subject_id, "ip_address": ip_address},
        )

        return Result.success(
            TokenResponse(
                access_token=access_token.token,
                refresh_token=refresh_token.token,
                expires_in=access_token.expires_in,
            )
        )

    async def refresh(
        self,
        refresh_token: str,
        ip_address: str,
        user_agent: str | None = None,
    ) -> Result[TokenResponse]:
        """Rotate a refresh token and return the new pair"""
        rotation = await self._engine.rotate(refresh_token, ip_address)
        if not rotation.ok:
            await self._record(
                self._audit.log_token_refresh(
                    user_id=None,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    reason=rotation.error.error_code,
                )
            )
            return Result.failure(rotation.error)

        result = rotation.value
        await self._record(
            self._audit.log_token_refresh(
                user_id=result.identity.subject_id,
                success=True,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

        return Result.success(
            TokenResponse(
                access_token=result.access_token.token,
                refresh_token=result.refresh_token.token,
                expires_in=result.access_token.expires_in,
            )
        )

    async def revoke(
        self,
        refresh_token: str,
        ip_address: str,
        user_agent: str | None = None,
    ) -> Result[bool]:
        """Revoke a refresh token; succeeds even if it was already inactive"""
        revoked = await self._engine.revoke(refresh_token, ip_address)
        if revoked.ok:
            await self._record(
                self._audit.log_token_revoke(
                    ip_address=ip_address,
                    user_agent=user_agent,
                    revoked=revoked.value,
                )
            )
        return revoked

    async def revoke_all(
        self,
        subject_id: str,
        ip_address: str,
        user_agent: str | None = None,
    ) -> Result[int]:
        """Log out everywhere: revoke every active refresh token of a subject"""
        revoked = await self._engine.revoke_all_for_subject(subject_id, ip_address)
        if revoked.ok:
            await self._record(
                self._audit.log_event(
                    event_type="token_revoke_all",
                    success=True,
                    user_id=subject_id,
                    event_data={"revoked_count": revoked.value},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
        return revoked

    async def _authenticate(self, username: str, password: str) -> Identity | None:
        try:
            return await asyncio.wait_for(
                self._identity_provider.authenticate(username, password),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(
                "Identity provider timed out",
                details={"operation": "authenticate", "timeout": self._timeout_seconds},
            ) from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                "Identity provider error",
                details={"operation": "authenticate", "error_type": type(e).__name__},
            ) from e

    async def _record(self, audit_write: Awaitable) -> None:
        try:
            await audit_write
        except SQLAlchemyError:
            logger.error("Audit write failed", exc_info=True)
