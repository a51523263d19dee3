"""
fleetcron - distributed cron jobs with lease-based exclusivity.

Every replica of a service schedules the same jobs; a quorum lease on a
shared lock backend makes sure each tick runs on exactly one of them.
Failed attempts are retried on a timer and reported to a notifier.

Quick start::

    from fleetcron import CronService, JobDefinition, LockStoreOptions, NotifierConfig

    service = CronService()
    await service.initialize(
        [JobDefinition(id="nightly-report", callback=build_report, schedule="0 2 * * *",
                       max_attempts=3, retry_interval_seconds=30, lease_ttl="10m")],
        lock_store=LockStoreOptions(urls=["redis://redis:6379/0"]),
        notifier=NotifierConfig(transport="slack", webhook_url=SLACK_URL, channel_name="#ops"),
    )
    await service.serve()
"""

from fleetcron.alerts import NotificationDispatcher, Notifier, NotifierConfig
from fleetcron.core import (
    AlreadyInitializedError,
    ConfigError,
    DuplicateJobError,
    Failure,
    FleetCronError,
    LeaseAcquisitionError,
    LockBackendConnectionError,
    NotifierDeliveryError,
    Outcome,
    RuntimeJobError,
    Success,
    ValidationError,
    configure_logging,
)
from fleetcron.core.settings import FleetCronSettings
from fleetcron.jobs import ChainState, ExecutionAttempt, JobDefinition, LeaseOptions, TickState
from fleetcron.locks import LeaseCoordinator, LockStoreConnection, LockStoreOptions
from fleetcron.scheduling import (
    CronService,
    EnablementGate,
    RetryChain,
    RetryEngine,
    ServiceStats,
    TickResult,
    TriggerEntryPoint,
    create_service,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Service
    "CronService",
    "ServiceStats",
    "create_service",
    "FleetCronSettings",
    # Jobs
    "JobDefinition",
    "LeaseOptions",
    "ExecutionAttempt",
    "ChainState",
    "TickState",
    # Components
    "RetryEngine",
    "RetryChain",
    "EnablementGate",
    "TriggerEntryPoint",
    "TickResult",
    "LeaseCoordinator",
    "LockStoreConnection",
    "LockStoreOptions",
    "NotificationDispatcher",
    "Notifier",
    "NotifierConfig",
    # Outcomes
    "Success",
    "Failure",
    "Outcome",
    # Errors
    "FleetCronError",
    "ValidationError",
    "DuplicateJobError",
    "ConfigError",
    "AlreadyInitializedError",
    "LockBackendConnectionError",
    "LeaseAcquisitionError",
    "RuntimeJobError",
    "NotifierDeliveryError",
    # Logging
    "configure_logging",
]
