"""Explicit success/failure values used instead of raising across seams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    error: Exception

    @property
    def ok(self) -> bool:
        return False


Outcome: TypeAlias = "Success[T] | Failure"

__all__ = ["Failure", "Outcome", "Success"]
