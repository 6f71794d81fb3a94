"""
Pytest configuration and fixtures.
"""

import os
from datetime import datetime, timedelta, timezone

# Settings are instantiated at import time
os.environ.setdefault("AUTH_SERVICE__SIGNING_KEY", "test-signing-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("AUTH_SERVICE__LOG_LEVEL", "DEBUG")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth_service.core.config import TokenConfig
from auth_service.models.database import Base
from auth_service.repositories.refresh_token_repository import SqlAlchemyRefreshTokenRepository
from auth_service.schemas.user import Identity
from auth_service.services.access_token_minter import AccessTokenMinter
from auth_service.utils import crypto

SIGNING_KEY = "test-signing-key-0123456789abcdef0123456789abcdef"
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime = T0):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current


class StubIdentityProvider:
    """In-memory identity provider keyed by subject id"""

    def __init__(self):
        self.identities: dict[str, Identity] = {}

    def add(self, subject_id: str, name: str, roles=("User",)) -> Identity:
        identity = Identity(subject_id=subject_id, display_name=name, roles=tuple(roles))
        self.identities[subject_id] = identity
        return identity

    async def authenticate(self, username: str, password: str) -> Identity | None:
        for identity in self.identities.values():
            if identity.display_name == username and password == "correct-password":
                return identity
        return None

    async def get_identity(self, subject_id: str) -> Identity | None:
        return self.identities.get(subject_id)


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Cheap bcrypt cost factor for tests"""
    monkeypatch.setattr(crypto, "pwd_context", crypto.pwd_context.copy(bcrypt__rounds=4))


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def repository(session_maker):
    return SqlAlchemyRefreshTokenRepository(session_maker)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def token_config():
    return TokenConfig(signing_key=SIGNING_KEY)


@pytest.fixture
def minter(token_config, clock):
    return AccessTokenMinter(token_config, clock=clock)


@pytest.fixture
def identity_provider():
    provider = StubIdentityProvider()
    provider.add("user-1", "alice", roles=("Admin", "User"))
    return provider
