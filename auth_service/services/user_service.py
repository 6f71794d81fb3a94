"""User service: SQL-backed identity provider"""

from datetime import datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.config import logger
from auth_service.models.user import Role, User
from auth_service.schemas.user import Identity, UserCreate
from auth_service.utils.crypto import dummy_verify_password, hash_password, verify_password

ADMIN_ROLE = "Admin"
USER_ROLE = "User"
DEFAULT_ROLES = (ADMIN_ROLE, USER_ROLE)


def to_identity(user: User) -> Identity:
    """Project a user onto the identity handed to the token core"""
    return Identity(
        subject_id=user.id,
        display_name=user.username,
        roles=tuple(user.role_names),
    )


class UserService:
    """Service for user management and credential checks"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        """
        Args:
            session_factory: Callable creating AsyncSession instances
        """
        self._session_factory = session_factory

    async def ensure_roles(self, names: Iterable[str] = DEFAULT_ROLES) -> None:
        """Create the given roles if they do not exist yet"""
        async with self._session_factory() as db:
            async with db.begin():
                for name in names:
                    await self._get_or_create_role(db, name)

    async def create_user(
        self,
        user_data: UserCreate,
        roles: Iterable[str] = (USER_ROLE,),
    ) -> User:
        """
        Create a new user

        Args:
            user_data: User creation data
            roles: Role names to assign

        Returns:
            Created user

        Raises:
            ValueError: If user already exists
        """
        async with self._session_factory() as db:
            try:
                async with db.begin():
                    existing = await db.execute(
                        select(User).where(
                            or_(User.username == user_data.username, User.email == user_data.email)
                        )
                    )
                    if existing.scalars().first():
                        raise ValueError("User with this username or email already exists")

                    user = User(
                        username=user_data.username,
                        email=str(user_data.email),
                        password_hash=hash_password(user_data.password),
                    )
                    user.roles = [await self._get_or_create_role(db, name) for name in roles]
                    db.add(user)
            except IntegrityError as e:
                raise ValueError("User with this username or email already exists") from e

        logger.info(f"User created: {user.id} ({user.username})")

        return user

    async def get_by_id(self, user_id: str) -> User | None:
        """
        Get user by ID

        Args:
            user_id: User ID

        Returns:
            User or None if not found
        """
        async with self._session_factory() as db:
            return await db.get(User, user_id)

    async def get_by_username(self, username: str) -> User | None:
        async with self._session_factory() as db:
            result = await db.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        async with self._session_factory() as db:
            result = await db.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def assign_role(self, user_id: str, role_name: str) -> bool:
        """
        Add a role to a user

        Returns:
            False if the user does not exist
        """
        async with self._session_factory() as db:
            async with db.begin():
                user = await db.get(User, user_id)
                if user is None:
                    return False
                if role_name not in user.role_names:
                    user.roles.append(await self._get_or_create_role(db, role_name))

        logger.info(f"Role '{role_name}' assigned to user {user_id}")
        return True

    async def remove_role(self, user_id: str, role_name: str) -> bool:
        """Remove a role from a user; False if the user does not exist"""
        async with self._session_factory() as db:
            async with db.begin():
                user = await db.get(User, user_id)
                if user is None:
                    return False
                user.roles = [role for role in user.roles if role.name != role_name]

        logger.info(f"Role '{role_name}' removed from user {user_id}")
        return True

    async def set_active(self, user_id: str, is_active: bool) -> bool:
        """Activate or deactivate a user; False if the user does not exist"""
        async with self._session_factory() as db:
            async with db.begin():
                user = await db.get(User, user_id)
                if user is None:
                    return False
                user.is_active = is_active
        return True

    async def authenticate(self, username: str, password: str) -> Identity | None:
        """
        Authenticate user by username/email and password

        Unknown user, inactive user and wrong password all return None.

        Args:
            username: Username or email
            password: Plain text password

        Returns:
            Identity if authentication successful, None otherwise
        """
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(User).where(or_(User.username == username, User.email == username))
                )
                user = result.scalars().first()

                if not user:
                    dummy_verify_password(password)
                    logger.warning(
                        "Authentication failed: user not found",
                        extra={"username": username},
                    )
                    return None

                password_ok = verify_password(password, user.password_hash)

                if not user.is_active:
                    logger.warning(
                        "Authentication failed: user inactive",
                        extra={"user_id": user.id},
                    )
                    return None

                if not password_ok:
                    logger.warning(
                        "Authentication failed: invalid password",
                        extra={"user_id": user.id},
                    )
                    return None

                user.last_login_at = datetime.now(timezone.utc)

        logger.info("Authentication successful", extra={"user_id": user.id})

        return to_identity(user)

    async def get_identity(self, subject_id: str) -> Identity | None:
        """Current identity (fresh roles) of an active user"""
        user = await self.get_by_id(subject_id)
        if user is None or not user.is_active:
            return None
        return to_identity(user)

    async def _get_or_create_role(self, db: AsyncSession, name: str) -> Role:
        result = await db.execute(select(Role).where(Role.name == name))
        role = result.scalar_one_or_none()
        if role is None:
            role = Role(name=name)
            db.add(role)
            await db.flush()
        return role
