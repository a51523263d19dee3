"""Enablement gate - per-tick runtime switch for jobs.

The gate is consulted once per tick, before any lease attempt. A ``False``
answer ends the tick with zero lease attempts and zero execution attempts,
and consumes none of the job's retry budget.

A predicate that raises is treated as "not enabled" for that tick; the
error is logged.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

from fleetcron.core.logging import JobLogger, resolve_logger

EnablementPredicate = Callable[[str], bool | Awaitable[bool]]


class EnablementGate:
    """Wraps an optional ``is_enabled(job_id)`` predicate, sync or async."""

    def __init__(
        self,
        predicate: EnablementPredicate | None = None,
        *,
        logger: JobLogger | None = None,
    ) -> None:
        if predicate is not None and not callable(predicate):
            raise TypeError("is_enabled predicate must be callable")
        self._predicate = predicate
        self._log = resolve_logger(logger)

    @property
    def has_predicate(self) -> bool:
        return self._predicate is not None

    async def is_enabled(self, job_id: str) -> bool:
        if self._predicate is None:
            return True
        try:
            result = self._predicate(job_id)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._log.error("enablement_check_failed", job_id=job_id, error=str(e))
            return False
        return bool(result)


__all__ = ["EnablementGate", "EnablementPredicate"]
