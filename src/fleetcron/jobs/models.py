"""Job definition and execution record models.

Manifesto:
    A job definition is static configuration: built once at startup,
    validated before any timer starts, never mutated afterwards. Execution
    attempts are ephemeral records the retry engine produces for logging,
    notification and inspection.

Tags:
    fleetcron, models, jobs, dataclasses, validation

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from fleetcron.core.durations import parse_duration
from fleetcron.core.errors import DuplicateJobError, ValidationError
from fleetcron.core.result import Outcome

JobCallback = Callable[[], Any | Awaitable[Any]]

DEFAULT_RETRY_INTERVAL_SECONDS = 5.0
DEFAULT_LEASE_TTL_SECONDS = 60.0


class ChainState(str, Enum):
    """State of one retry chain."""

    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not ChainState.RUNNING


class TickState(str, Enum):
    """States a single tick moves through in the trigger entry point."""

    PENDING = "PENDING"
    CHECK_ENABLED = "CHECK_ENABLED"
    SKIPPED_DISABLED = "SKIPPED_DISABLED"
    ACQUIRE_LEASE = "ACQUIRE_LEASE"
    SKIPPED_LOCKED = "SKIPPED_LOCKED"
    RUN_ATTEMPT = "RUN_ATTEMPT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    ERRORED = "ERRORED"  # Unexpected error outside the job body, recovered locally


# ---------------------------------------------------------------------------
# Lease options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LeaseOptions:
    """Backend tuning for lease acquisition.

    The defaults fail fast: one quorum round, no waiting. Contention
    resolves as "skip this tick" on every instance but the winner.

    Attributes:
        acquire_attempts: Quorum rounds before giving up (>= 1)
        retry_delay_seconds: Pause between rounds
        retry_jitter_seconds: Random extra pause, spreads contending instances
        drift_factor: Clock drift allowance as a fraction of the TTL
    """

    acquire_attempts: int = 1
    retry_delay_seconds: float = 0.2
    retry_jitter_seconds: float = 0.2
    drift_factor: float = 0.01

    def __post_init__(self) -> None:
        if self.acquire_attempts < 1:
            raise ValidationError(
                "acquire_attempts must be >= 1",
                field="acquire_attempts",
                value=self.acquire_attempts,
            )
        if self.retry_delay_seconds < 0 or self.retry_jitter_seconds < 0:
            raise ValidationError("lease retry delays must be >= 0", field="retry_delay_seconds")
        if not 0 <= self.drift_factor < 1:
            raise ValidationError(
                "drift_factor must be in [0, 1)", field="drift_factor", value=self.drift_factor
            )


# ---------------------------------------------------------------------------
# Job definition
# ---------------------------------------------------------------------------


def has_whitespace(value: str) -> bool:
    return any(ch.isspace() for ch in value)


@dataclass(frozen=True)
class JobDefinition:
    """Static configuration of one periodic job.

    Example:
        >>> job = JobDefinition(
        ...     id="nightly-report",
        ...     callback=build_report,
        ...     schedule="0 2 * * *",
        ...     max_attempts=3,
        ...     retry_interval_seconds=30,
        ...     lease_ttl="10m",
        ... )

    Attributes:
        id: Unique, whitespace-free identifier (also the lease key suffix)
        callback: Zero-argument job body, sync or async
        schedule: Cron string (5 or 6 fields), datetime, or APScheduler trigger
        timezone: Timezone for cron evaluation (None = service default)
        max_attempts: Attempts per tick, >= 1 (1 = no retry)
        retry_interval_seconds: Delay between attempt n and n+1, >= 0
        lease_ttl: Lease lifetime; must exceed the worst-case total chain time
        lease_options: Lease acquisition tuning
        enabled: Static switch; disabled jobs are never scheduled
    """

    id: str
    callback: JobCallback
    schedule: Any = None
    timezone: str | None = None
    max_attempts: int = 1
    retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS
    lease_ttl: float | int | str | timedelta = DEFAULT_LEASE_TTL_SECONDS
    lease_options: LeaseOptions = field(default_factory=LeaseOptions)
    enabled: bool = True

    def __post_init__(self) -> None:
        validate_job_id(self.id)
        if not callable(self.callback):
            raise ValidationError(
                f"Job {self.id!r} callback must be callable", field="callback", value=self.callback
            )
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ValidationError(
                f"Job {self.id!r} max_attempts must be an int", field="max_attempts",
                value=self.max_attempts,
            )
        if self.max_attempts < 1:
            raise ValidationError(
                f"Job {self.id!r} max_attempts must be >= 1",
                field="max_attempts",
                value=self.max_attempts,
            )
        object.__setattr__(
            self,
            "retry_interval_seconds",
            parse_duration(self.retry_interval_seconds, field="retry_interval_seconds"),
        )
        object.__setattr__(self, "lease_ttl", parse_duration(self.lease_ttl, field="lease_ttl"))
        if self.lease_ttl <= 0:
            raise ValidationError(
                f"Job {self.id!r} lease_ttl must be > 0", field="lease_ttl", value=self.lease_ttl
            )

    @property
    def lease_ttl_seconds(self) -> float:
        return float(self.lease_ttl)  # normalized in __post_init__

    @property
    def is_schedulable(self) -> bool:
        """Enabled and has something for the timer to fire on."""
        return self.enabled and self.schedule is not None


def validate_job_id(job_id: Any) -> None:
    """Reject empty, non-string or whitespace-containing ids."""
    if not isinstance(job_id, str) or not job_id:
        raise ValidationError("Job ID must be a non-empty string", field="id", value=job_id)
    if has_whitespace(job_id):
        raise ValidationError(
            f"Job ID must be a string without spaces: {job_id!r}", field="id", value=job_id
        )


def validate_jobs(jobs: Iterable[JobDefinition]) -> list[JobDefinition]:
    """Validate a job list as a whole (types, ids, uniqueness).

    Runs synchronously so a bad definition stops startup before any
    timer, connection or task exists.

    Raises:
        ValidationError: Bad entry or bad id
        DuplicateJobError: Two jobs share an id
    """
    validated: list[JobDefinition] = []
    seen: set[str] = set()
    for job in jobs:
        if not isinstance(job, JobDefinition):
            raise ValidationError(f"Expected JobDefinition, got {type(job).__name__}", value=job)
        validate_job_id(job.id)
        if job.id in seen:
            raise DuplicateJobError(job.id)
        seen.add(job.id)
        validated.append(job)
    return validated


# ---------------------------------------------------------------------------
# Execution attempt
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExecutionAttempt:
    """One attempt within a retry chain."""

    job_id: str
    attempt_number: int
    started_at: datetime
    ended_at: datetime
    outcome: Outcome[Any]

    @property
    def succeeded(self) -> bool:
        return self.outcome.is_success()

    @property
    def error(self) -> Exception | None:
        return None if self.outcome.is_success() else self.outcome.error

    @property
    def duration_ms(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "attempt_number": self.attempt_number,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_ms": self.duration_ms,
            **self.outcome.to_dict(),
        }
