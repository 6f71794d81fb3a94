"""Cryptography utilities"""

import hashlib
import secrets

from passlib.context import CryptContext

# Password hashing context with bcrypt
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,  # Cost factor
)

# 64 random bytes, 512 bits of entropy
REFRESH_SECRET_BYTES = 64


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        Hashed password
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a hash (constant-time comparison)

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


_dummy_hash: str | None = None


def dummy_verify_password(plain_password: str) -> bool:
    """
    Spend the same bcrypt work as a real check, for accounts that do not exist

    Keeps response timing from revealing whether a username is registered.

    Returns:
        Always False
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = pwd_context.hash(secrets.token_urlsafe(16))
    pwd_context.verify(plain_password, _dummy_hash)
    return False


def generate_refresh_secret(num_bytes: int = REFRESH_SECRET_BYTES) -> str:
    """
    Generate an opaque refresh token secret

    Args:
        num_bytes: Number of random bytes, at least 32

    Returns:
        URL-safe Base64 string
    """
    if num_bytes < 32:
        raise ValueError("Refresh token secrets need at least 256 bits of randomness")
    return secrets.token_urlsafe(num_bytes)


def fingerprint(secret: str) -> str:
    """Short SHA-256 fingerprint of a secret, safe to put in logs"""
    return hashlib.sha256(secret.encode()).hexdigest()[:8]
