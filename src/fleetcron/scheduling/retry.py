"""Retry engine - bounded, non-blocking re-attempts of a job callback.

Manifesto:
    A failed attempt is not an exception to propagate, it is an outcome to
    act on. The engine runs the callback, turns the result into an
    ``Outcome``, notifies on failure, and either arms a timer for the next
    attempt or ends the chain. Nothing it does blocks the event loop while
    waiting out a retry delay, and nothing a callback raises escapes it.

Chain Flow::

    run_with_retries(job_id, callback, max_attempts, interval)
      │
      ▼
    ┌──────────────────────────────┐
    │ attempt n                     │
    │   cron_start                  │
    │   outcome = capture(callback) │
    │   cron_end (duration_ms)      │
    └──────┬───────────────┬───────┘
           │ Success       │ Failure
           ▼               ▼
       SUCCEEDED      log + dispatcher.dispatch(job_id, error)   (not awaited)
                           │
                 n < max ──┼── n == max
                     │     │      │
                     ▼     │      ▼
        loop.call_at(end + interval)   FAILED
          └──► attempt n+1

Volatility:
    Retry timers live in the event loop only. A process that exits
    mid-chain loses every pending retry.

Guardrails:
    ❌ DON'T: ``await asyncio.sleep(interval)`` inside the attempt
    ✅ DO: Arm a loop timer and return

    ❌ DON'T: Await the notifier before deciding on a retry
    ✅ DO: Dispatch and move on

Tags:
    fleetcron, retry, scheduling, asyncio, outcome
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fleetcron.alerts.dispatcher import NotificationDispatcher
from fleetcron.core.errors import RuntimeJobError
from fleetcron.core.logging import JobLogger, resolve_logger
from fleetcron.core.result import capture_outcome
from fleetcron.jobs.models import (
    DEFAULT_RETRY_INTERVAL_SECONDS,
    ChainState,
    ExecutionAttempt,
    JobCallback,
)


@dataclass
class RetryChain:
    """Handle on one retry chain.

    The first attempt has already completed when the handle is returned;
    later attempts run from loop timers. ``wait()`` resolves once the
    chain reaches a terminal state.
    """

    job_id: str
    max_attempts: int
    retry_interval_seconds: float
    attempts: list[ExecutionAttempt] = field(default_factory=list)
    state: ChainState = ChainState.RUNNING
    done: asyncio.Future[ChainState] | None = field(default=None, repr=False)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def errors(self) -> list[Exception]:
        return [a.error for a in self.attempts if a.error is not None]

    @property
    def last_attempt(self) -> ExecutionAttempt | None:
        return self.attempts[-1] if self.attempts else None

    def finish(self, state: ChainState) -> None:
        self.state = state
        if self.done is not None and not self.done.done():
            self.done.set_result(state)

    async def wait(self) -> ChainState:
        """Wait for the terminal state."""
        if self.state.is_terminal or self.done is None:
            return self.state
        return await asyncio.shield(self.done)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "max_attempts": self.max_attempts,
            "attempts": [a.to_dict() for a in self.attempts],
        }


class RetryEngine:
    """Runs callbacks with bounded, timer-driven retries.

    Example:
        >>> engine = RetryEngine(NotificationDispatcher(notifier))
        >>> chain = await engine.run_with_retries("report", build_report, max_attempts=3)
        >>> await chain.wait()
        <ChainState.SUCCEEDED: 'SUCCEEDED'>
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        *,
        logger: JobLogger | None = None,
    ) -> None:
        self._log = resolve_logger(logger)
        self._dispatcher = dispatcher or NotificationDispatcher(logger=self._log)
        self._timers: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def pending_retries(self) -> int:
        """Armed timers plus retry attempts currently running."""
        return len(self._timers) + len(self._tasks)

    async def run_with_retries(
        self,
        job_id: str,
        callback: JobCallback,
        max_attempts: int = 1,
        retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS,
        attempt: int = 1,
    ) -> RetryChain:
        """Run ``callback`` as attempt ``attempt`` of a new chain.

        Never raises for callback failures; inspect the returned chain.
        """
        loop = asyncio.get_running_loop()
        chain = RetryChain(
            job_id=job_id,
            max_attempts=max_attempts,
            retry_interval_seconds=max(0.0, float(retry_interval_seconds)),
            done=loop.create_future(),
        )
        await self._run_attempt(chain, callback, attempt)
        return chain

    async def _run_attempt(self, chain: RetryChain, callback: JobCallback, attempt: int) -> None:
        loop = asyncio.get_running_loop()
        job_id = chain.job_id

        self._log.log("cron_start", job_id=job_id, attempt=attempt, max_attempts=chain.max_attempts)
        started_at = datetime.now(UTC)
        outcome = await capture_outcome(callback)
        ended_at = datetime.now(UTC)
        ended = loop.time()

        record = ExecutionAttempt(
            job_id=job_id,
            attempt_number=attempt,
            started_at=started_at,
            ended_at=ended_at,
            outcome=outcome,
        )
        chain.attempts.append(record)
        self._log.log(
            "cron_end",
            job_id=job_id,
            attempt=attempt,
            duration_ms=record.duration_ms,
            success=outcome.is_success(),
        )

        if outcome.is_success():
            chain.finish(ChainState.SUCCEEDED)
            return

        failure = RuntimeJobError(job_id, attempt, outcome.error)
        self._log.error(
            "error_while_processing",
            job_id=job_id,
            attempt=attempt,
            max_attempts=chain.max_attempts,
            error=failure.message,
            error_type=type(outcome.error).__name__,
        )
        self._dispatcher.dispatch(job_id, outcome.error)

        if attempt >= chain.max_attempts:
            self._log.warn("job_chain_failed", job_id=job_id, attempts=chain.attempt_count)
            chain.finish(ChainState.FAILED)
            return

        try:
            self._arm(chain, callback, attempt + 1, ended + chain.retry_interval_seconds)
        except Exception as e:
            self._log.error("retry_schedule_failed", job_id=job_id, attempt=attempt + 1, error=str(e))
            chain.finish(ChainState.FAILED)
            return
        self._log.debug(
            "retry_scheduled",
            job_id=job_id,
            next_attempt=attempt + 1,
            delay_seconds=chain.retry_interval_seconds,
        )

    # === Timer plumbing ===

    def _arm(self, chain: RetryChain, callback: JobCallback, attempt: int, due: float) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._timers.discard(handle)
            self._fire(chain, callback, attempt, due)

        handle = loop.call_at(due, fire)
        self._timers.add(handle)

    def _fire(self, chain: RetryChain, callback: JobCallback, attempt: int, due: float) -> None:
        try:
            loop = asyncio.get_running_loop()
            # Loop timers may fire up to one clock resolution early
            if loop.time() < due:
                self._arm(chain, callback, attempt, due)
                return
            task = loop.create_task(
                self._run_retry(chain, callback, attempt),
                name=f"fleetcron-retry-{chain.job_id}-{attempt}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        except Exception as e:
            self._log.error("retry_schedule_failed", job_id=chain.job_id, attempt=attempt, error=str(e))
            chain.finish(ChainState.FAILED)

    async def _run_retry(self, chain: RetryChain, callback: JobCallback, attempt: int) -> None:
        try:
            await self._run_attempt(chain, callback, attempt)
        except Exception as e:
            self._log.error("retry_failed", job_id=chain.job_id, attempt=attempt, error=str(e))
            chain.finish(ChainState.FAILED)
        except BaseException:
            # Cancellation still ends the chain so waiters are released
            self._log.warn("retry_cancelled", job_id=chain.job_id, attempt=attempt)
            chain.finish(ChainState.FAILED)
            raise


__all__ = ["RetryChain", "RetryEngine"]
