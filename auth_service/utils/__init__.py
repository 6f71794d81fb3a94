"""Utility modules"""

from auth_service.utils.crypto import (
    dummy_verify_password,
    fingerprint,
    generate_refresh_secret,
    hash_password,
    verify_password,
)

__all__ = [
    "hash_password",
    "verify_password",
    "dummy_verify_password",
    "generate_refresh_secret",
    "fingerprint",
]
