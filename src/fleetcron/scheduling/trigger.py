"""Trigger entry point - one scheduled tick, end to end.

Manifesto:
    The scheduler fires; the trigger decides whether anything happens.
    Every tick walks the same state machine, and every way out of it is a
    ``TickResult`` except one: a lease failure under the fatal policy.

State Machine::

    PENDING
      │
      ▼
    CHECK_ENABLED ── job.enabled is False or gate says no ──► SKIPPED_DISABLED
      │
      ▼
    ACQUIRE_LEASE ── quorum not reached ──► SKIPPED_LOCKED
      │                                     (or raise, if fatal_on_lease_failure)
      ▼
    RUN_ATTEMPT(1..max_attempts)   (lease held for the whole chain)
      │
      ├─ chain SUCCEEDED ──► SUCCEEDED
      └─ chain FAILED    ──► FAILED

    Unexpected error outside the job body ──► ERRORED (logged with its stage)

Guardrails:
    ❌ DON'T: Count a skipped tick against the retry budget
    ✅ DO: Start a fresh chain on every tick that runs

    ❌ DON'T: Release the lease after the first attempt
    ✅ DO: Await the whole chain inside the lease scope

Tags:
    fleetcron, trigger, state-machine, tick
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fleetcron.core.errors import LeaseAcquisitionError
from fleetcron.core.logging import JobLogger, resolve_logger
from fleetcron.jobs.models import ChainState, JobDefinition, TickState
from fleetcron.locks.coordinator import LeaseCoordinator
from fleetcron.locks.protocol import Lease
from fleetcron.scheduling.gate import EnablementGate
from fleetcron.scheduling.retry import RetryChain, RetryEngine


@dataclass
class TickResult:
    """What one tick did."""

    job_id: str
    state: TickState
    chain: RetryChain | None = None
    error: BaseException | None = None

    @property
    def ran(self) -> bool:
        return self.chain is not None

    @property
    def attempts(self) -> int:
        return self.chain.attempt_count if self.chain else 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "job_id": self.job_id,
            "state": self.state.value,
            "attempts": self.attempts,
        }
        if self.error is not None:
            result["error"] = str(self.error)
        return result


class TriggerEntryPoint:
    """Composes gate, lease coordinator and retry engine for one job.

    ``coordinator=None`` runs without cross-instance exclusivity (ad-hoc
    jobs, single-instance deployments).
    """

    def __init__(
        self,
        job: JobDefinition,
        *,
        engine: RetryEngine,
        gate: EnablementGate | None = None,
        coordinator: LeaseCoordinator | None = None,
        fatal_on_lease_failure: bool = False,
        logger: JobLogger | None = None,
    ) -> None:
        self._job = job
        self._engine = engine
        self._log = resolve_logger(logger)
        self._gate = gate or EnablementGate(logger=self._log)
        self._coordinator = coordinator
        self._fatal_on_lease_failure = fatal_on_lease_failure

    @property
    def job(self) -> JobDefinition:
        return self._job

    @property
    def lease_key(self) -> str | None:
        return self._coordinator.key_for(self._job.id) if self._coordinator else None

    async def fire(self) -> TickResult:
        """Run one tick.

        Raises:
            LeaseAcquisitionError: Only when ``fatal_on_lease_failure`` is set
        """
        job = self._job
        stage = TickState.CHECK_ENABLED

        async def run_chain(lease: Lease | None = None) -> RetryChain:
            nonlocal stage
            stage = TickState.RUN_ATTEMPT
            return await self._run_chain(lease)

        try:
            if not job.enabled or not await self._gate.is_enabled(job.id):
                self._log.debug("tick_skipped_disabled", job_id=job.id)
                return TickResult(job.id, TickState.SKIPPED_DISABLED)

            if self._coordinator is None:
                chain = await run_chain()
            else:
                stage = TickState.ACQUIRE_LEASE
                chain = await self._coordinator.with_lease(
                    self._coordinator.key_for(job.id),
                    job.lease_ttl_seconds,
                    job.lease_options,
                    run_chain,
                )
        except LeaseAcquisitionError as e:
            if self._fatal_on_lease_failure:
                self._log.error("lease_acquisition_failed", job_id=job.id, key=e.key, error=str(e))
                raise
            self._log.debug("tick_skipped_locked", job_id=job.id, key=e.key)
            return TickResult(job.id, TickState.SKIPPED_LOCKED, error=e)
        except Exception as e:
            self._log.error("tick_errored", job_id=job.id, stage=stage.value, error=str(e))
            return TickResult(job.id, TickState.ERRORED, error=e)

        state = TickState.SUCCEEDED if chain.state is ChainState.SUCCEEDED else TickState.FAILED
        return TickResult(job.id, state, chain=chain)

    async def _run_chain(self, lease: Lease | None = None) -> RetryChain:
        job = self._job
        chain = await self._engine.run_with_retries(
            job.id,
            job.callback,
            max_attempts=job.max_attempts,
            retry_interval_seconds=job.retry_interval_seconds,
        )
        await chain.wait()
        return chain


__all__ = ["TickResult", "TriggerEntryPoint"]
