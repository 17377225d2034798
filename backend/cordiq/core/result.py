"""Success/failure values for operations whose errors are swallowed at the edge.

Draft persistence and cache operations never raise to their callers, but the
internal steps still need to report what went wrong so they can be logged and
tested directly. Those steps return a ``Result``; the public method decides
what a failure turns into (``None``, a status field, nothing at all).
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a fallible step: a value or the exception that stopped it."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Result[T]":
        return cls(error=error)

    @property
    def error_message(self) -> str | None:
        """The failure's message, falling back to its type name."""
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__
