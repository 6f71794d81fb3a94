"""
Exception hierarchy for the Auth Service.

Token-lifecycle errors are not raised through the engine: they travel inside
a ``Result`` so callers have to branch on the outcome explicitly. Only
``ConfigurationError`` is meant to abort the process (at startup).
"""

from typing import Any, Dict, Optional


class AuthServiceError(Exception):
    """
    Base exception for all Auth Service errors.

    Attributes:
        message: Error message
        details: Additional error details
        error_code: Error code for identification
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        self.error_code = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the error to a dictionary.

        Returns:
            Dictionary with error code, message and details
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(AuthServiceError):
    """Fatal misconfiguration detected at startup (e.g. missing signing key)"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="CONFIGURATION_ERROR")


class InvalidCredential(AuthServiceError):
    """Login failed. Never says whether the account exists."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Invalid credentials",
            details=details,
            error_code="INVALID_CREDENTIAL",
        )


class InvalidOrInactiveRefreshToken(AuthServiceError):
    """
    Refresh token is unknown, expired or revoked.

    The sub-reason goes into ``details`` for server-side logging only; the
    message is identical for every case.
    """

    def __init__(self, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(
            message="Invalid refresh token",
            details=details,
            error_code=error_code or "INVALID_REFRESH_TOKEN",
        )


class ConcurrentRotationLost(InvalidOrInactiveRefreshToken):
    """Another request rotated the same refresh token first"""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(details=details, error_code="CONCURRENT_ROTATION_LOST")


class StoreUnavailable(AuthServiceError):
    """Refresh token store failed or timed out. Not retried by the engine."""

    def __init__(self, message: str = "Token store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="STORE_UNAVAILABLE")


class InvalidAccessToken(AuthServiceError):
    """Access token failed signature, claim or expiry verification"""

    def __init__(self, message: str = "Invalid access token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="INVALID_ACCESS_TOKEN")
