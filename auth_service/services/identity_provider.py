"""Identity provider contract consumed by the token core"""

from typing import Protocol

from auth_service.schemas.user import Identity


class IdentityProvider(Protocol):
    """
    Verifies credentials and resolves subjects to their current identity.

    The token core never sees password hashes; it only receives an
    ``Identity`` (subject id, display name, roles).
    """

    async def authenticate(self, username: str, password: str) -> Identity | None:
        """Return the identity for valid credentials, None otherwise"""
        ...

    async def get_identity(self, subject_id: str) -> Identity | None:
        """Return the current identity of an active subject, None otherwise"""
        ...
