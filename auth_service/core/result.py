"""Value-returned operation outcomes"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from auth_service.core.errors import AuthServiceError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a token-lifecycle operation.

    Exactly one of ``value`` / ``error`` is meaningful: ``ok`` is true when
    ``error`` is None.
    """

    value: Optional[T] = None
    error: Optional[AuthServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AuthServiceError) -> "Result[T]":
        return cls(error=error)
