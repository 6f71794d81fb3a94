"""
Refresh token persistence port and its SQLAlchemy implementation.

Every method is one transaction. Writes are conditional
(``revoked_at IS NULL AND expires_at > now``) so a revocation timestamp is
set at most once and concurrent rotations of one token have a single winner.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.config import logger
from auth_service.models.refresh_token import RefreshToken


class RefreshTokenRepository(ABC):
    """Store of refresh token records"""

    @abstractmethod
    async def add(self, token: RefreshToken) -> RefreshToken:
        """Insert a new record. Raises IntegrityError on a duplicate secret."""

    @abstractmethod
    async def get_by_secret(self, secret: str) -> RefreshToken | None:
        """Find a record by its bearer secret"""

    @abstractmethod
    async def get_by_id(self, token_id: str) -> RefreshToken | None:
        """Find a record by id"""

    @abstractmethod
    async def rotate(
        self,
        current_id: str,
        successor: RefreshToken,
        now: datetime,
        source_ip: str,
    ) -> bool:
        """
        Revoke ``current_id`` in favour of ``successor`` and insert the successor

        Returns:
            False (and no change) if the current record was no longer active
        """

    @abstractmethod
    async def revoke(self, secret: str, now: datetime, source_ip: str) -> bool:
        """Revoke an active record. Returns True if this call revoked it."""

    @abstractmethod
    async def revoke_chain(self, start_id: str, now: datetime, source_ip: str) -> int:
        """Revoke every active record reachable through ``replaced_by_id``"""

    @abstractmethod
    async def revoke_all_for_subject(self, subject_id: str, now: datetime, source_ip: str) -> int:
        """Revoke every active record of a subject"""

    @abstractmethod
    async def list_for_subject(self, subject_id: str) -> list[RefreshToken]:
        """All records of a subject, oldest first"""


def _active_at(now: datetime):
    return (RefreshToken.revoked_at.is_(None), RefreshToken.expires_at > now)


class SqlAlchemyRefreshTokenRepository(RefreshTokenRepository):
    """SQLAlchemy implementation, one session and transaction per call"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        """
        Args:
            session_factory: Callable creating AsyncSession instances
        """
        self._session_factory = session_factory

    async def add(self, token: RefreshToken) -> RefreshToken:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(token)
        return token

    async def get_by_secret(self, secret: str) -> RefreshToken | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RefreshToken).where(RefreshToken.token == secret)
            )
            return result.scalar_one_or_none()

    async def get_by_id(self, token_id: str) -> RefreshToken | None:
        async with self._session_factory() as session:
            return await session.get(RefreshToken, token_id)

    async def rotate(
        self,
        current_id: str,
        successor: RefreshToken,
        now: datetime,
        source_ip: str,
    ) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.id == current_id, *_active_at(now))
                    .values(
                        revoked_at=now,
                        revoked_by_ip=source_ip,
                        replaced_by_id=successor.id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.debug(
                        f"Conditional rotate matched no active row: id={current_id}",
                        extra={"token_id": current_id},
                    )
                    return False

                session.add(successor)
        return True

    async def revoke(self, secret: str, now: datetime, source_ip: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.token == secret, *_active_at(now))
                    .values(revoked_at=now, revoked_by_ip=source_ip)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount > 0

    async def revoke_chain(self, start_id: str, now: datetime, source_ip: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                chain_ids: list[str] = []
                seen: set[str] = set()
                next_id: str | None = start_id

                while next_id is not None and next_id not in seen:
                    seen.add(next_id)
                    token = await session.get(RefreshToken, next_id)
                    if token is None:
                        break
                    chain_ids.append(token.id)
                    next_id = token.replaced_by_id

                if not chain_ids:
                    return 0

                result = await session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.id.in_(chain_ids), *_active_at(now))
                    .values(revoked_at=now, revoked_by_ip=source_ip)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

    async def revoke_all_for_subject(self, subject_id: str, now: datetime, source_ip: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.subject_id == subject_id, *_active_at(now))
                    .values(revoked_at=now, revoked_by_ip=source_ip)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

    async def list_for_subject(self, subject_id: str) -> list[RefreshToken]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RefreshToken)
                .where(RefreshToken.subject_id == subject_id)
                .order_by(RefreshToken.created_at)
            )
            return list(result.scalars().all())
