"""Result values returned at component boundaries.

Failures inside the loop are expected (timeouts, throttling, bad model
output), so components hand back a ``Result`` instead of raising and
callers pick the documented fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why an operation produced no value."""

    TRANSIENT = "transient"  # I/O or provider hiccup, retryable
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    PARSE = "parse"  # model output did not match the expected schema
    AUTH = "auth"  # missing or rejected credentials, never retried
    STORAGE = "storage"
    RESOURCE_PRESSURE = "resource_pressure"
    INVARIANT = "invariant"  # e.g. a task kind with no handler


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an ErrorKind with a human-readable detail."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    detail: str = ""

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: ErrorKind, detail: str = "") -> "Result[T]":
        return cls(error=error, detail=detail)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.error is None else default

    def describe(self) -> str:
        """Short text for logs and task results."""
        if self.error is None:
            return "ok"
        if self.detail:
            return f"{self.error.value}: {self.detail}"
        return self.error.value
