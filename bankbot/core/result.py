"""
Two-variant result values returned by the external collaborators.

Transaction sources and notification sinks never raise for expected
failures; they return ``Err`` and the caller decides what to degrade.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the error that caused it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


Result = Union[Ok[T], Err]
