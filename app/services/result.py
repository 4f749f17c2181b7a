"""
Explicit outcome type for service operations.

Services return ServiceResult instead of raising for expected failures
(missing rows, duplicates, bad input); routes map the kind to a status code.
"""
import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    """Expected failure kinds at a service boundary."""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID = "invalid"


@dataclass
class ServiceResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "ServiceResult[T]":
        return cls(error=error, message=message)
