"""Job definitions, lease options and execution records."""

from fleetcron.jobs.models import (
    ChainState,
    ExecutionAttempt,
    JobCallback,
    JobDefinition,
    LeaseOptions,
    TickState,
    validate_job_id,
    validate_jobs,
)

__all__ = [
    "ChainState",
    "ExecutionAttempt",
    "JobCallback",
    "JobDefinition",
    "LeaseOptions",
    "TickState",
    "validate_job_id",
    "validate_jobs",
]
