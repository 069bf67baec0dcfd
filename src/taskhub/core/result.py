"""
Result envelope for activity outcomes.

An activity either returns a value or raises. The runners capture that
outcome once, as ``Ok`` or ``Err``, so that the response builder, the span
status and the final re-raise all read from the same value instead of
threading ``try``/``except`` through every step.

Architecture:
    ::

        ┌─────────────────┬─────────────────┐
        │     Ok[T]       │     Err[T]      │
        ├─────────────────┼─────────────────┤
        │ • value: T      │ • error: Exc    │
        │ • unwrap()      │ • unwrap() ⇒ raise
        └─────────────────┴─────────────────┘

Examples:
    >>> try_result(lambda: 1 / 0).is_err()
    True
    >>> try_result(lambda: 10 * 2).unwrap()
    20

Guardrails:
    ❌ DON'T: Call unwrap() on Err unless you mean to re-raise the captured error
    ✅ DO: Pattern match or check is_ok() first

Tags:
    result-pattern, error-handling, taskhub
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing the exception that was raised.

    ``unwrap()`` re-raises the original exception object, so its traceback
    and chained cause survive the round trip.
    """

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the captured error."""
        raise self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """
    Execute a zero-argument callable and wrap the outcome.

    Only ``Exception`` subclasses are captured; ``KeyboardInterrupt`` and
    ``SystemExit`` propagate.
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)
