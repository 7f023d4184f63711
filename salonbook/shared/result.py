"""Explicit success/failure values for reads that must not collapse errors into None"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: Exception

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
