"""
Tests for RefreshTokenEngine: issuance, rotation, revocation and expiry.
"""

import asyncio
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from auth_service.core.config import TokenConfig
from auth_service.core.errors import (
    ConcurrentRotationLost,
    InvalidOrInactiveRefreshToken,
    StoreUnavailable,
)
from auth_service.models.refresh_token import RefreshToken
from auth_service.repositories.refresh_token_repository import (
    RefreshTokenRepository,
    SqlAlchemyRefreshTokenRepository,
)
from auth_service.services.refresh_token_engine import RefreshTokenEngine
from auth_service.utils.crypto import generate_refresh_secret

from conftest import SIGNING_KEY, T0

IP = "203.0.113.7"


def _successor(now) -> RefreshToken:
    return RefreshToken(
        id=str(uuid.uuid4()),
        token=generate_refresh_secret(),
        subject_id="user-1",
        created_at=now,
        expires_at=now + timedelta(days=7),
        created_by_ip=IP,
    )


@pytest.fixture
def reuse_handler():
    return AsyncMock()


@pytest.fixture
def engine(repository, minter, identity_provider, token_config, clock, reuse_handler):
    return RefreshTokenEngine(
        repository=repository,
        minter=minter,
        identity_provider=identity_provider,
        config=token_config,
        clock=clock,
        on_reuse=reuse_handler,
    )


class TestIssue:
    """Refresh token issuance"""

    @pytest.mark.asyncio
    async def test_issue_sets_validity_window(self, engine):
        result = await engine.issue("user-1", IP)

        assert result.ok
        token = result.value
        assert token.subject_id == "user-1"
        assert token.created_at == T0
        assert token.expires_at == T0 + timedelta(days=7)
        assert token.created_by_ip == IP
        assert token.revoked_at is None
        assert engine.is_active(token)

    @pytest.mark.asyncio
    async def test_secrets_are_unique_and_long(self, engine):
        secrets = set()
        for _ in range(50):
            result = await engine.issue("user-1", IP)
            secrets.add(result.value.token)

        assert len(secrets) == 50
        assert all(len(secret) >= 86 for secret in secrets)

    @pytest.mark.asyncio
    async def test_issue_persists_token(self, engine, repository):
        issued = (await engine.issue("user-1", IP)).value

        stored = await repository.get_by_secret(issued.token)

        assert stored is not None
        assert stored.id == issued.id


class TestRotate:
    """Single-use rotation"""

    @pytest.mark.asyncio
    async def test_happy_path(self, engine, repository, clock):
        # Arrange
        token_a = (await engine.issue("user-1", IP)).value
        clock.advance(timedelta(seconds=1))

        # Act
        result = await engine.rotate(token_a.token, IP)

        # Assert
        assert result.ok
        token_b = result.value.refresh_token
        assert token_b.token != token_a.token
        assert token_b.subject_id == "user-1"
        assert token_b.created_at == T0 + timedelta(seconds=1)
        assert token_b.expires_at == T0 + timedelta(days=7, seconds=1)

        stored_a = await repository.get_by_id(token_a.id)
        assert stored_a.is_revoked
        assert stored_a.replaced_by_id == token_b.id
        assert stored_a.revoked_by_ip == IP

        access = result.value.access_token
        assert access.claims.sub == "user-1"
        assert access.claims.name == "alice"
        assert access.claims.roles == ["Admin", "User"]

        second = await engine.rotate(token_a.token, IP)
        assert not second.ok
        assert isinstance(second.error, InvalidOrInactiveRefreshToken)

    @pytest.mark.asyncio
    async def test_successor_can_be_rotated(self, engine):
        token_a = (await engine.issue("user-1", IP)).value
        token_b = (await engine.rotate(token_a.token, IP)).value.refresh_token

        result = await engine.rotate(token_b.token, IP)

        assert result.ok
        assert result.value.refresh_token.token not in {token_a.token, token_b.token}

    @pytest.mark.asyncio
    async def test_rejections_are_indistinguishable(self, engine, clock):
        rotated = (await engine.issue("user-1", IP)).value
        await engine.rotate(rotated.token, IP)

        revoked = (await engine.issue("user-1", IP)).value
        await engine.revoke(revoked.token, IP)

        expired = (await engine.issue("user-1", IP)).value
        clock.advance(timedelta(days=8))

        outcomes = [
            await engine.rotate(rotated.token, IP),
            await engine.rotate(revoked.token, IP),
            await engine.rotate(expired.token, IP),
            await engine.rotate("never-issued", IP),
        ]

        assert all(not outcome.ok for outcome in outcomes)
        assert {type(outcome.error) for outcome in outcomes} == {InvalidOrInactiveRefreshToken}
        assert {outcome.error.message for outcome in outcomes} == {"Invalid refresh token"}

    @pytest.mark.asyncio
    async def test_expired_token_is_not_mutated(self, minter, identity_provider, clock):
        short_lived = TokenConfig(signing_key=SIGNING_KEY, refresh_token_lifetime=timedelta(seconds=1))
        repository = AsyncMock(spec=RefreshTokenRepository)
        engine = RefreshTokenEngine(repository, minter, identity_provider, short_lived, clock=clock)
        token = RefreshToken(
            id="token-1",
            token="secret",
            subject_id="user-1",
            created_at=T0,
            expires_at=T0 + timedelta(seconds=1),
            created_by_ip=IP,
        )
        repository.get_by_secret.return_value = token

        result = await engine.rotate("secret", IP, now=T0 + timedelta(seconds=2))

        assert not result.ok
        assert result.error.details["reason"] == "expired"
        repository.rotate.assert_not_awaited()
        repository.revoke_chain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_roles_are_refetched(self, engine, identity_provider):
        token = (await engine.issue("user-1", IP)).value
        identity_provider.add("user-1", "alice", roles=("User",))

        result = await engine.rotate(token.token, IP)

        assert result.value.access_token.claims.roles == ["User"]

    @pytest.mark.asyncio
    async def test_inactive_subject_rejected_without_mutation(self, engine, identity_provider, repository):
        token = (await engine.issue("user-1", IP)).value
        del identity_provider.identities["user-1"]

        result = await engine.rotate(token.token, IP)

        assert not result.ok
        assert result.error.details["reason"] == "subject_inactive"
        assert (await repository.get_by_id(token.id)).revoked_at is None


class TestReuseDetection:
    """Presenting a token that was already rotated away"""

    @pytest.mark.asyncio
    async def test_reuse_revokes_chain_and_reports(self, engine, repository, reuse_handler):
        token_a = (await engine.issue("user-1", IP)).value
        token_b = (await engine.rotate(token_a.token, IP)).value.refresh_token
        token_c = (await engine.rotate(token_b.token, IP)).value.refresh_token

        result = await engine.rotate(token_a.token, "198.51.100.1")

        assert not result.ok
        assert isinstance(result.error, InvalidOrInactiveRefreshToken)
        assert not (await engine.rotate(token_c.token, IP)).ok
        assert (await repository.get_by_id(token_c.id)).revoked_by_ip == "198.51.100.1"

        reuse_handler.assert_awaited_once()
        event = reuse_handler.await_args.args[0]
        assert event.token_id == token_a.id
        assert event.subject_id == "user-1"
        assert event.revoked_count == 1

    @pytest.mark.asyncio
    async def test_chain_revocation_can_be_disabled(self, repository, minter, identity_provider, clock):
        config = TokenConfig(signing_key=SIGNING_KEY, revoke_chain_on_reuse=False)
        engine = RefreshTokenEngine(repository, minter, identity_provider, config, clock=clock)
        token_a = (await engine.issue("user-1", IP)).value
        token_b = (await engine.rotate(token_a.token, IP)).value.refresh_token

        assert not (await engine.rotate(token_a.token, IP)).ok
        assert (await engine.rotate(token_b.token, IP)).ok

    @pytest.mark.asyncio
    async def test_failing_reuse_handler_does_not_change_outcome(self, engine, reuse_handler):
        reuse_handler.side_effect = RuntimeError("audit down")
        token_a = (await engine.issue("user-1", IP)).value
        await engine.rotate(token_a.token, IP)

        result = await engine.rotate(token_a.token, IP)

        assert isinstance(result.error, InvalidOrInactiveRefreshToken)

    @pytest.mark.asyncio
    async def test_explicit_revoke_is_not_reuse(self, engine, reuse_handler):
        token = (await engine.issue("user-1", IP)).value
        await engine.revoke(token.token, IP)

        await engine.rotate(token.token, IP)

        reuse_handler.assert_not_awaited()


class TestRevoke:
    """Idempotent, monotonic revocation"""

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, engine, repository, clock):
        token = (await engine.issue("user-1", IP)).value

        first = await engine.revoke(token.token, IP)
        first_revoked_at = (await repository.get_by_id(token.id)).revoked_at
        clock.advance(timedelta(minutes=1))
        second = await engine.revoke(token.token, "198.51.100.1")

        assert first.ok and first.value is True
        assert second.ok and second.value is False
        stored = await repository.get_by_id(token.id)
        assert stored.revoked_at == first_revoked_at
        assert stored.revoked_by_ip == IP

    @pytest.mark.asyncio
    async def test_unknown_secret_is_acknowledged(self, engine):
        result = await engine.revoke("never-issued", IP)

        assert result.ok
        assert result.value is False

    @pytest.mark.asyncio
    async def test_revoked_token_stays_inactive(self, engine, repository, clock):
        token = (await engine.issue("user-1", IP)).value
        await engine.revoke(token.token, IP)

        for _ in range(3):
            clock.advance(timedelta(hours=1))
            stored = await repository.get_by_id(token.id)
            assert not engine.is_active(stored)
            assert not (await engine.rotate(token.token, IP)).ok

    @pytest.mark.asyncio
    async def test_revoke_all_for_subject(self, engine, identity_provider):
        identity_provider.add("user-2", "bob")
        tokens = [(await engine.issue("user-1", IP)).value for _ in range(3)]
        other = (await engine.issue("user-2", IP)).value

        result = await engine.revoke_all_for_subject("user-1", IP)

        assert result.value == 3
        assert [(await engine.rotate(t.token, IP)).ok for t in tokens] == [False, False, False]
        assert (await engine.rotate(other.token, IP)).ok


class TestExpiry:
    """Expiry is inclusive of expires_at"""

    @pytest.mark.asyncio
    async def test_boundary(self, engine):
        token = (await engine.issue("user-1", IP)).value

        assert engine.is_active(token, now=token.expires_at - timedelta(microseconds=1))
        assert not engine.is_active(token, now=token.expires_at)

    @pytest.mark.asyncio
    async def test_rotation_at_expiry_fails(self, engine):
        token = (await engine.issue("user-1", IP)).value

        result = await engine.rotate(token.token, IP, now=token.expires_at)

        assert not result.ok
        assert result.error.details["reason"] == "expired"


class TestStoreFailures:
    """Store errors and timeouts surface as StoreUnavailable"""

    @pytest.mark.asyncio
    async def test_timeout(self, minter, identity_provider, clock):
        config = TokenConfig(signing_key=SIGNING_KEY, store_timeout_seconds=0.05)
        repository = AsyncMock(spec=RefreshTokenRepository)

        async def slow_lookup(secret):
            await asyncio.sleep(1)

        repository.get_by_secret.side_effect = slow_lookup
        engine = RefreshTokenEngine(repository, minter, identity_provider, config, clock=clock)

        result = await engine.rotate("secret", IP)

        assert not result.ok
        assert isinstance(result.error, StoreUnavailable)
        assert result.error.details["operation"] == "lookup"

    @pytest.mark.asyncio
    async def test_database_error(self, minter, identity_provider, token_config, clock):
        repository = AsyncMock(spec=RefreshTokenRepository)
        repository.add.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
        engine = RefreshTokenEngine(repository, minter, identity_provider, token_config, clock=clock)

        result = await engine.issue("user-1", IP)

        assert isinstance(result.error, StoreUnavailable)

    @pytest.mark.asyncio
    async def test_revoke_timeout(self, minter, identity_provider, clock):
        config = TokenConfig(signing_key=SIGNING_KEY, store_timeout_seconds=0.05)
        repository = AsyncMock(spec=RefreshTokenRepository)

        async def slow_revoke(secret, now, source_ip):
            await asyncio.sleep(1)

        repository.revoke.side_effect = slow_revoke
        engine = RefreshTokenEngine(repository, minter, identity_provider, config, clock=clock)

        result = await engine.revoke("secret", IP)

        assert isinstance(result.error, StoreUnavailable)


class TestConcurrentRotation:
    """Racing rotations of one token on a file-backed database"""

    @pytest.mark.asyncio
    async def test_exactly_one_winner(self, tmp_path, minter, identity_provider, token_config, clock):
        from auth_service.models.database import (
            close_db,
            create_engine,
            create_session_maker,
            init_db,
        )

        db_engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
        await init_db(db_engine)
        try:
            repository = SqlAlchemyRefreshTokenRepository(create_session_maker(db_engine))
            engine = RefreshTokenEngine(repository, minter, identity_provider, token_config, clock=clock)
            token = (await engine.issue("user-1", IP)).value

            results = await asyncio.gather(*(engine.rotate(token.token, IP) for _ in range(5)))

            winners = [r for r in results if r.ok]
            losers = [r for r in results if not r.ok]
            assert len(winners) == 1
            assert all(isinstance(r.error, InvalidOrInactiveRefreshToken) for r in losers)

            records = {r.id: r for r in await repository.list_for_subject("user-1")}
            assert len(records) == 2
            assert records[token.id].replaced_by_id == winners[0].value.refresh_token.id
        finally:
            await close_db(db_engine)

    @pytest.mark.asyncio
    async def test_losing_conditional_rotate_inserts_nothing(self, engine, repository, clock):
        token = (await engine.issue("user-1", IP)).value
        winner = _successor(clock.now())
        loser = _successor(clock.now())

        assert await repository.rotate(token.id, winner, clock.now(), IP) is True
        assert await repository.rotate(token.id, loser, clock.now(), IP) is False

        assert await repository.get_by_id(loser.id) is None
        assert (await repository.get_by_id(token.id)).replaced_by_id == winner.id

    @pytest.mark.asyncio
    async def test_lost_race_reports_concurrent_rotation(self, minter, identity_provider, token_config, clock):
        repository = AsyncMock(spec=RefreshTokenRepository)
        repository.get_by_secret.return_value = RefreshToken(
            id="token-1",
            token="secret",
            subject_id="user-1",
            created_at=T0,
            expires_at=T0 + timedelta(days=7),
            created_by_ip=IP,
        )
        repository.rotate.return_value = False
        engine = RefreshTokenEngine(repository, minter, identity_provider, token_config, clock=clock)

        result = await engine.rotate("secret", IP)

        assert isinstance(result.error, ConcurrentRotationLost)
        assert isinstance(result.error, InvalidOrInactiveRefreshToken)
