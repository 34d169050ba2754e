"""
Tagged stage outcomes.

Stages whose failure drives a retry or a fallback return ``Ok(value)`` or
``Err(kind)`` instead of raising, so the routing decision is plain data.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: str
    detail: str = ""
    raw: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Ok[T], Err]
