"""Refresh token lifecycle: issue, single-use rotation, revocation, expiry"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth_service.core.clock import Clock, SystemClock, ensure_utc
from auth_service.core.config import TokenConfig, logger
from auth_service.core.errors import (
    ConcurrentRotationLost,
    InvalidOrInactiveRefreshToken,
    StoreUnavailable,
)
from auth_service.core.result import Result
from auth_service.models.refresh_token import RefreshToken
from auth_service.repositories.refresh_token_repository import RefreshTokenRepository
from auth_service.schemas.token import MintedAccessToken
from auth_service.schemas.user import Identity
from auth_service.services.access_token_minter import AccessTokenMinter
from auth_service.services.identity_provider import IdentityProvider
from auth_service.utils.crypto import fingerprint, generate_refresh_secret

T = TypeVar("T")

# Fresh secrets to try when the unique constraint rejects one
MAX_SECRET_ATTEMPTS = 3


@dataclass(frozen=True)
class RotationResult:
    """Successor refresh token and the access token minted with it"""

    refresh_token: RefreshToken
    access_token: MintedAccessToken
    identity: Identity


@dataclass(frozen=True)
class RefreshTokenReuseDetected:
    """A refresh token was presented again after it had been rotated away"""

    token_id: str
    subject_id: str
    source_ip: str
    revoked_count: int
    detected_at: datetime


ReuseHandler = Callable[[RefreshTokenReuseDetected], Awaitable[None]]


class RefreshTokenEngine:
    """
    State machine of refresh tokens.

    ``Active -> Rotated | Revoked`` are stored transitions, ``Active -> Expired``
    is derived at read time. Nothing leaves a terminal state.

    All lifecycle failures come back as ``Result`` values. Store calls are
    bounded by ``store_timeout_seconds`` and never retried here.
    """

    def __init__(
        self,
        repository: RefreshTokenRepository,
        minter: AccessTokenMinter,
        identity_provider: IdentityProvider,
        config: TokenConfig,
        clock: Clock | None = None,
        on_reuse: ReuseHandler | None = None,
    ):
        """
        Args:
            repository: Refresh token store
            minter: Access token minter used after a successful rotation
            identity_provider: Source of the subject's current roles
            config: Token configuration
            clock: Time source used when callers do not pass ``now``
            on_reuse: Awaited when a rotated-away token is presented again
        """
        self._repository = repository
        self._minter = minter
        self._identity_provider = identity_provider
        self._config = config
        self._clock = clock or SystemClock()
        self._on_reuse = on_reuse

    async def issue(
        self,
        subject_id: str,
        source_ip: str,
        now: datetime | None = None,
    ) -> Result[RefreshToken]:
        """
        Issue a new refresh token for a subject

        Args:
            subject_id: Owning user id
            source_ip: Address of the requesting client
            now: Issue time, defaults to the clock

        Returns:
            Result with the persisted RefreshToken, or StoreUnavailable
        """
        now = self._now(now)
        try:
            for attempt in range(1, MAX_SECRET_ATTEMPTS + 1):
                token = self._new_token(subject_id, source_ip, now)
                try:
                    await self._call("issue", self._repository.add(token))
                except IntegrityError:
                    logger.warning(
                        f"Refresh token secret collision, regenerating (attempt {attempt})",
                        extra={"subject_id": subject_id},
                    )
                    continue

                logger.info(
                    f"Refresh token issued: {token.id}",
                    extra={"subject_id": subject_id, "token_id": token.id, "ip_address": source_ip},
                )
                return Result.success(token)

            raise StoreUnavailable("Could not persist a unique refresh token")
        except StoreUnavailable as e:
            return self._store_failure("issue", e)

    async def rotate(
        self,
        presented_secret: str,
        source_ip: str,
        now: datetime | None = None,
    ) -> Result[RotationResult]:
        """
        Exchange an active refresh token for a new refresh/access token pair

        The presented token is revoked and its successor inserted in a single
        conditional transaction; a concurrent rotation of the same token loses
        with ConcurrentRotationLost. Unknown, expired and revoked tokens all
        fail with the same InvalidOrInactiveRefreshToken.

        Args:
            presented_secret: Secret sent by the client
            source_ip: Address of the requesting client
            now: Rotation time, defaults to the clock

        Returns:
            Result with RotationResult on success
        """
        now = self._now(now)
        try:
            current = await self._call("lookup", self._repository.get_by_secret(presented_secret))
            if current is None:
                return self._reject("unknown", presented_secret)

            if not current.is_active(now):
                if current.is_rotated:
                    await self._handle_reuse(current, source_ip, now)
                reason = "revoked" if current.is_revoked else "expired"
                return self._reject(reason, presented_secret, current)

            # Roles are re-read on every rotation so changes apply immediately
            identity = await self._call(
                "identity", self._identity_provider.get_identity(current.subject_id)
            )
            if identity is None:
                return self._reject("subject_inactive", presented_secret, current)

            successor = None
            for attempt in range(1, MAX_SECRET_ATTEMPTS + 1):
                candidate = self._new_token(current.subject_id, source_ip, now)
                try:
                    rotated = await self._call(
                        "rotate",
                        self._repository.rotate(current.id, candidate, now, source_ip),
                    )
                except IntegrityError:
                    logger.warning(
                        f"Refresh token secret collision during rotation (attempt {attempt})",
                        extra={"subject_id": current.subject_id},
                    )
                    continue

                if not rotated:
                    logger.warning(
                        f"Concurrent rotation lost: {current.id}",
                        extra={"token_id": current.id, "subject_id": current.subject_id},
                    )
                    return Result.failure(
                        ConcurrentRotationLost(details={"token_id": current.id})
                    )
                successor = candidate
                break

            if successor is None:
                raise StoreUnavailable("Could not persist a unique refresh token")
        except StoreUnavailable as e:
            return self._store_failure("rotate", e)

        access_token = self._minter.mint(
            identity.subject_id,
            identity.display_name,
            identity.roles,
            now=now,
        )

        logger.info(
            f"Refresh token rotated: {current.id} -> {successor.id}",
            extra={
                "subject_id": current.subject_id,
                "token_id": current.id,
                "successor_id": successor.id,
                "ip_address": source_ip,
            },
        )

        return Result.success(
            RotationResult(refresh_token=successor, access_token=access_token, identity=identity)
        )

    async def revoke(
        self,
        presented_secret: str,
        source_ip: str,
        now: datetime | None = None,
    ) -> Result[bool]:
        """
        Revoke a refresh token (idempotent)

        Unknown or already inactive tokens are acknowledged as well.

        Returns:
            Result with True if this call performed the revocation
        """
        now = self._now(now)
        try:
            changed = await self._call(
                "revoke", self._repository.revoke(presented_secret, now, source_ip)
            )
        except StoreUnavailable as e:
            return self._store_failure("revoke", e)

        logger.info(
            "Refresh token revoked" if changed else "Refresh token already inactive",
            extra={"token": fingerprint(presented_secret), "ip_address": source_ip},
        )
        return Result.success(changed)

    async def revoke_all_for_subject(
        self,
        subject_id: str,
        source_ip: str,
        now: datetime | None = None,
    ) -> Result[int]:
        """Revoke every active refresh token of a subject"""
        now = self._now(now)
        try:
            count = await self._call(
                "revoke_all",
                self._repository.revoke_all_for_subject(subject_id, now, source_ip),
            )
        except StoreUnavailable as e:
            return self._store_failure("revoke_all", e)

        logger.info(
            f"Revoked {count} refresh tokens for subject {subject_id}",
            extra={"subject_id": subject_id, "ip_address": source_ip},
        )
        return Result.success(count)

    def is_active(self, token: RefreshToken, now: datetime | None = None) -> bool:
        """Pure predicate: token is neither revoked nor expired at ``now``"""
        return token.is_active(self._now(now))

    async def _handle_reuse(self, token: RefreshToken, source_ip: str, now: datetime) -> None:
        revoked_count = 0
        if self._config.revoke_chain_on_reuse and token.replaced_by_id:
            revoked_count = await self._call(
                "revoke_chain",
                self._repository.revoke_chain(token.replaced_by_id, now, source_ip),
            )

        logger.warning(
            f"SECURITY: Refresh token reuse detected! token={token.id}, "
            f"subject={token.subject_id}, revoked {revoked_count} descendant tokens",
            extra={
                "token_id": token.id,
                "subject_id": token.subject_id,
                "ip_address": source_ip,
                "revoked_count": revoked_count,
            },
        )

        if self._on_reuse is None:
            return

        event = RefreshTokenReuseDetected(
            token_id=token.id,
            subject_id=token.subject_id,
            source_ip=source_ip,
            revoked_count=revoked_count,
            detected_at=now,
        )
        try:
            await self._on_reuse(event)
        except Exception:
            logger.error("Refresh token reuse handler failed", exc_info=True)

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._config.store_timeout_seconds)
        except IntegrityError:
            raise
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(
                "Token store timed out",
                details={"operation": operation, "timeout": self._config.store_timeout_seconds},
            ) from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                "Token store error",
                details={"operation": operation, "error_type": type(e).__name__},
            ) from e

    def _new_token(self, subject_id: str, source_ip: str, now: datetime) -> RefreshToken:
        return RefreshToken(
            id=str(uuid.uuid4()),
            token=generate_refresh_secret(),
            subject_id=subject_id,
            created_at=now,
            expires_at=now + self._config.refresh_token_lifetime,
            created_by_ip=source_ip,
        )

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now or self._clock.now())

    def _reject(
        self,
        reason: str,
        presented_secret: str,
        token: RefreshToken | None = None,
    ) -> Result:
        logger.info(
            f"Refresh token rejected: {reason}",
            extra={
                "reason": reason,
                "token": fingerprint(presented_secret),
                "token_id": token.id if token else None,
            },
        )
        return Result.failure(InvalidOrInactiveRefreshToken(details={"reason": reason}))

    def _store_failure(self, operation: str, error: StoreUnavailable) -> Result:
        logger.error(
            f"Refresh token store unavailable during {operation}: {error}",
            extra={"operation": operation},
        )
        return Result.failure(error)
