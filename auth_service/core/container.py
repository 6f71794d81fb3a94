"""Composition root: builds the service graph from settings"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from auth_service.core.clock import Clock, SystemClock
from auth_service.core.config import Settings, TokenConfig, logger
from auth_service.models.database import close_db, create_engine, create_session_maker, init_db
from auth_service.repositories.refresh_token_repository import SqlAlchemyRefreshTokenRepository
from auth_service.schemas.user import UserCreate
from auth_service.services.access_token_minter import AccessTokenMinter
from auth_service.services.audit_service import AuditService
from auth_service.services.auth_service import AuthService
from auth_service.services.refresh_token_engine import RefreshTokenEngine
from auth_service.services.user_service import ADMIN_ROLE, USER_ROLE, UserService


class Container:
    """
    Holds the long-lived objects of one application instance.

    Construction fails with ConfigurationError when the signing key is
    missing, so a misconfigured service never starts serving requests.
    """

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine | None = None,
        clock: Clock | None = None,
    ):
        """
        Args:
            settings: Application settings
            engine: Pre-built database engine (tests), created from settings otherwise
            clock: Time source shared by the minter and the refresh token engine
        """
        self.settings = settings
        self.token_config: TokenConfig = settings.token_config()
        self.clock = clock or SystemClock()

        self.minter = AccessTokenMinter(self.token_config, clock=self.clock)

        self.db_engine = engine or create_engine(settings.db_url, echo=False)
        self.session_maker: async_sessionmaker[AsyncSession] = create_session_maker(self.db_engine)

        self.user_service = UserService(self.session_maker)
        self.audit_service = AuditService(self.session_maker)
        self.refresh_token_repository = SqlAlchemyRefreshTokenRepository(self.session_maker)
        self.refresh_token_engine = RefreshTokenEngine(
            repository=self.refresh_token_repository,
            minter=self.minter,
            identity_provider=self.user_service,
            config=self.token_config,
            clock=self.clock,
            on_reuse=self.audit_service.record_refresh_token_reuse,
        )
        self.auth_service = AuthService(
            engine=self.refresh_token_engine,
            minter=self.minter,
            identity_provider=self.user_service,
            audit=self.audit_service,
            timeout_seconds=self.token_config.store_timeout_seconds,
        )

        logger.info("Container initialized")

    async def startup(self) -> None:
        """Create tables and seed default roles and the optional admin account"""
        await init_db(self.db_engine)
        await self.user_service.ensure_roles()
        await self._seed_admin()

    async def shutdown(self) -> None:
        """Release database connections"""
        await close_db(self.db_engine)

    async def _seed_admin(self) -> None:
        if not self.settings.admin_password:
            logger.debug("Admin password not set, skipping admin seed")
            return

        if await self.user_service.get_by_username(self.settings.admin_username):
            logger.debug("Admin user already exists")
            return

        await self.user_service.create_user(
            UserCreate(
                username=self.settings.admin_username,
                email=self.settings.admin_email,
                password=self.settings.admin_password,
            ),
            roles=(ADMIN_ROLE, USER_ROLE),
        )
        logger.info("✓ Admin user created successfully")
