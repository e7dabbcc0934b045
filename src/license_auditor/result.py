"""Tagged success/failure results for operations with expected failure modes.

The scan results cache reports missing entries, corrupt payloads and I/O
problems through these types instead of raising, so callers can always check
the cache first and fall back to scanning.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """A successful outcome carrying a value."""

    value: T

    @property
    def is_success(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def value_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    """A failed outcome with a diagnostic message and the originating cause.

    Attributes:
        message: Human readable description of what failed.
        cause: The exception that caused the failure, if any.
    """

    message: str
    cause: Optional[BaseException] = None

    @property
    def is_success(self) -> bool:
        return False

    def unwrap(self):
        raise RuntimeError(self.message) from self.cause

    def value_or(self, default: T) -> T:
        return default


Result = Union[Success[T], Failure]
