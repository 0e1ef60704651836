"""
Explicit best-effort results.

Reads that are allowed to fail without aborting the enclosing operation
(git sub-queries, metadata documents during listing) return an Outcome:

    Ok(value)                  - the read succeeded
    Degraded(value, reason)    - the read failed; value is the fallback

Callers get a value either way and can still see that it was defaulted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


Outcome = Union[Ok[T], Degraded[T]]


async def attempt(
    awaitable: Awaitable[T],
    default: T,
    expected: type[BaseException] | tuple[type[BaseException], ...],
) -> Outcome[T]:
    """Await a read, turning an expected failure into Degraded(default).

    Args:
        awaitable: The read to perform
        default: Fallback value
        expected: Exception type(s) treated as a degraded read; anything
            else propagates
    """
    try:
        return Ok(await awaitable)
    except expected as e:
        return Degraded(default, str(e))
