"""Outcome type for optional sub-analyses."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar('T')


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either an available value or the reason it is unavailable."""
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def unavailable(cls, reason: str) -> "Outcome[T]":
        return cls(reason=reason)

    @property
    def available(self) -> bool:
        return self.reason is None

    def unwrap_or_none(self) -> Optional[T]:
        return self.value if self.available else None
