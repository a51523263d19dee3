"""
Outcome envelope for job attempts.

A job body is an arbitrary callable that either completes or raises. The
retry engine never reasons about raised exceptions directly: every attempt
is funnelled through :func:`capture_outcome`, which turns "returned" into
``Success`` and "raised" into ``Failure(error)``. The engine's decision
logic then branches on the outcome value.

Architecture:
    ::

        ┌─────────────────┐         ┌──────────────────────┐
        │ callback() ok   │ ──────> │  Success(value)      │
        └─────────────────┘         └──────────────────────┘
        ┌─────────────────┐         ┌──────────────────────┐
        │ callback raises │ ──────> │  Failure(error)      │
        └─────────────────┘         └──────────────────────┘

Examples:
    >>> async def body():
    ...     return 42
    >>> outcome = await capture_outcome(body)
    >>> outcome.is_success()
    True
    >>> outcome.value
    42

Guardrails:
    ❌ DON'T: Catch ``BaseException``; cancellation and ``KeyboardInterrupt``
       must keep propagating
    ✅ DO: Convert ``Exception`` subclasses into ``Failure``

Tags:
    result-pattern, outcome, fleetcron

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fleetcron.core.errors import FleetCronError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """The attempt completed normally."""

    value: T = None  # type: ignore[assignment]

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"outcome": "success"}

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


@dataclass(frozen=True, slots=True)
class Failure(Generic[T]):
    """The attempt raised ``error``."""

    error: Exception

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Re-raise the captured error."""
        raise self.error

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        if isinstance(self.error, FleetCronError):
            return {"outcome": "failure", "error": self.error.to_dict()}
        return {
            "outcome": "failure",
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Failure({self.error!r})"


Outcome = Success[T] | Failure[T]


async def capture_outcome(callback: Callable[[], Any | Awaitable[Any]]) -> Outcome[Any]:
    """Invoke a zero-argument callback and wrap its result.

    Accepts plain functions, coroutine functions and callables that return
    an awaitable.
    """
    try:
        result = callback()
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        return Failure(exc)
    return Success(result)


__all__ = ["Success", "Failure", "Outcome", "capture_outcome"]
