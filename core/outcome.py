"""
Two-variant outcomes for remote calls.

Enhancement is fail-open and generation is fail-closed. Wrapping each awaited
call in `recover()` or `propagate()` keeps that policy visible where the call
is made instead of burying it in a generic except block.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Recovered(Generic[T]):
    """A usable value. `error` is set when the value is a fallback."""

    value: T
    error: Optional[BaseException] = None

    @property
    def fell_back(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Propagated:
    """A failure that must reach the caller's error boundary."""

    error: BaseException

    @property
    def message(self) -> str:
        return str(self.error)


Outcome = Union[Recovered[T], Propagated]


async def recover(call: Awaitable[T], fallback: T, label: str = "call") -> Recovered[T]:
    """Await `call`; on any exception return `fallback` instead."""
    try:
        return Recovered(await call)
    except Exception as e:
        logger.error(f"{label} failed, using fallback: {e}")
        return Recovered(fallback, error=e)


async def propagate(call: Awaitable[T]) -> Outcome:
    """Await `call`; on any exception capture it for the caller to surface."""
    try:
        return Recovered(await call)
    except Exception as e:
        return Propagated(e)
