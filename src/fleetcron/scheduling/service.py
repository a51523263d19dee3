"""Cron service - process-wide orchestrator.

Manifesto:
    A fleet process owns exactly one lock store connection, one notifier
    and one timer backend. ``CronService`` makes that ownership explicit:
    ``initialize()`` validates everything before touching the network,
    wires the components, and starts the timers; ``shutdown()`` undoes it.
    There is no module-level registry.

Tags:
    fleetcron, scheduling, orchestrator, lifecycle, service

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  CRON SERVICE ARCHITECTURE                                                    │
│                                                                               │
│  initialize(jobs, lock_store, logger, is_enabled, notifier, ...)             │
│    1. resolve logger capability          (ValidationError)                    │
│    2. validate_jobs(jobs)                (ValidationError, DuplicateJobError) │
│    3. build every timer trigger          (ValidationError)                    │
│    4. connect lock store, PING nodes     (LockBackendConnectionError)         │
│    5. wire components, start timers                                           │
│                                                                               │
│  ┌──────────────┐  tick   ┌──────────────────────────────────────────────┐   │
│  │ TimerBackend │ ──────► │ spawn task: TriggerEntryPoint.fire()          │   │
│  │ (APScheduler)│         │   EnablementGate ─► LeaseCoordinator          │   │
│  └──────────────┘         │     ─► RetryEngine ─► NotificationDispatcher  │   │
│                           └──────────────────────────────────────────────┘   │
│                                                                               │
│  Public API:                                                                  │
│  ├── initialize(...)     Validate, connect, start (idempotent per config)    │
│  ├── schedule_job(...)   Ad-hoc job, no lease                                 │
│  ├── trigger(job_id)     Manual tick through the full pipeline               │
│  ├── stats()             ServiceStats snapshot                                │
│  ├── serve()             Block until shutdown or a fatal error                │
│  └── shutdown(wait)      Stop timers, drain, close the connection            │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from fleetcron.alerts.dispatcher import NotificationDispatcher
from fleetcron.alerts.protocol import Notifier, NotifierConfig
from fleetcron.alerts.registry import build_notifier
from fleetcron.core.errors import (
    AlreadyInitializedError,
    ConfigError,
    DuplicateJobError,
    LeaseAcquisitionError,
    ValidationError,
)
from fleetcron.core.logging import JobLogger, LogContext, resolve_logger
from fleetcron.core.settings import FleetCronSettings
from fleetcron.jobs.models import (
    DEFAULT_RETRY_INTERVAL_SECONDS,
    JobCallback,
    JobDefinition,
    TickState,
    validate_jobs,
)
from fleetcron.locks.connection import LockStoreConnection, LockStoreOptions
from fleetcron.locks.coordinator import DEFAULT_NAMESPACE, LeaseCoordinator
from fleetcron.scheduling.gate import EnablementGate, EnablementPredicate
from fleetcron.scheduling.retry import RetryEngine
from fleetcron.scheduling.timers import DEFAULT_TIMEZONE, TimerBackend, build_trigger
from fleetcron.scheduling.trigger import TickResult, TriggerEntryPoint

FatalHandler = Callable[[BaseException], None]


@dataclass
class ServiceStats:
    """Counters for one service lifetime."""

    ticks_fired: int = 0
    ticks_skipped_disabled: int = 0
    ticks_skipped_locked: int = 0
    chains_succeeded: int = 0
    chains_failed: int = 0
    tick_errors: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def record(self, result: TickResult) -> None:
        self.last_tick = datetime.now(UTC)
        if result.state is TickState.SKIPPED_DISABLED:
            self.ticks_skipped_disabled += 1
        elif result.state is TickState.SKIPPED_LOCKED:
            self.ticks_skipped_locked += 1
        elif result.state is TickState.SUCCEEDED:
            self.chains_succeeded += 1
        elif result.state is TickState.FAILED:
            self.chains_failed += 1
        elif result.state is TickState.ERRORED:
            self.tick_errors += 1
            self.last_error = str(result.error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticks_fired": self.ticks_fired,
            "ticks_skipped_disabled": self.ticks_skipped_disabled,
            "ticks_skipped_locked": self.ticks_skipped_locked,
            "chains_succeeded": self.chains_succeeded,
            "chains_failed": self.chains_failed,
            "tick_errors": self.tick_errors,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


class CronService:
    """Explicit owner of the lock connection, notifier and timers.

    Example:
        >>> service = CronService()
        >>> await service.initialize(
        ...     [JobDefinition(id="report", callback=build_report, schedule="0 2 * * *")],
        ...     lock_store=LockStoreOptions(urls=["redis://redis:6379/0"]),
        ...     notifier=NotifierConfig(transport="slack", webhook_url=url),
        ... )
        >>> await service.serve()
    """

    def __init__(self) -> None:
        self._initialized = False
        self._fingerprint: tuple[Any, ...] | None = None
        self._init_lock = asyncio.Lock()
        self._log: JobLogger = resolve_logger(None)
        self._jobs: dict[str, JobDefinition] = {}
        self._triggers: dict[str, TriggerEntryPoint] = {}
        self._connection: LockStoreConnection | None = None
        self._coordinator: LeaseCoordinator | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._engine: RetryEngine | None = None
        self._timers: TimerBackend | None = None
        self._inflight: set[asyncio.Task[TickResult | None]] = set()
        self._stats = ServiceStats()
        self._stop_event: asyncio.Event | None = None
        self._fatal_error: BaseException | None = None
        self._on_fatal: FatalHandler | None = None
        self._default_timezone = DEFAULT_TIMEZONE

    # === Lifecycle ===

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def jobs(self) -> dict[str, JobDefinition]:
        return dict(self._jobs)

    @property
    def timers(self) -> TimerBackend | None:
        return self._timers

    @property
    def coordinator(self) -> LeaseCoordinator | None:
        return self._coordinator

    @property
    def fatal_error(self) -> BaseException | None:
        return self._fatal_error

    async def initialize(
        self,
        jobs: Iterable[JobDefinition],
        *,
        lock_store: LockStoreOptions | LockStoreConnection | None = None,
        logger: Any = None,
        is_enabled: EnablementPredicate | None = None,
        notifier: NotifierConfig | Notifier | None = None,
        fatal_on_lease_failure: bool = False,
        namespace: str = DEFAULT_NAMESPACE,
        default_timezone: str = DEFAULT_TIMEZONE,
        scheduler: Any = None,
        on_fatal: FatalHandler | None = None,
        start: bool = True,
    ) -> None:
        """Validate, connect and start.

        Calling again with an identical configuration is a no-op.

        Raises:
            ValidationError: Bad job list, schedule or logger capability
            AlreadyInitializedError: Already initialized with another configuration
            LockBackendConnectionError: Lock backend unreachable
        """
        # Everything up to the first await is synchronous validation
        log = resolve_logger(logger)
        validated = validate_jobs(jobs)
        if is_enabled is not None and not callable(is_enabled):
            raise ValidationError("is_enabled must be callable", field="is_enabled", value=is_enabled)
        if lock_store is not None and not isinstance(lock_store, (LockStoreOptions, LockStoreConnection)):
            raise ValidationError(
                f"Unsupported lock_store: {type(lock_store).__name__}",
                field="lock_store",
                value=lock_store,
            )

        fingerprint = (
            tuple(validated),
            lock_store,
            logger,
            is_enabled,
            notifier,
            fatal_on_lease_failure,
            namespace,
            default_timezone,
        )
        if self._initialized:
            if fingerprint == self._fingerprint:
                self._log.debug("already_initialized")
                return
            raise AlreadyInitializedError(
                "CronService is already initialized with a different configuration; "
                "call shutdown() first"
            )

        for job in validated:
            if job.is_schedulable:
                build_trigger(job.schedule, job.timezone or default_timezone)

        async with self._init_lock:
            if self._initialized:
                if fingerprint == self._fingerprint:
                    return
                raise AlreadyInitializedError("CronService was initialized concurrently")
            await self._start(
                validated,
                log=log,
                lock_store=lock_store,
                is_enabled=is_enabled,
                notifier=notifier,
                fatal_on_lease_failure=fatal_on_lease_failure,
                namespace=namespace,
                default_timezone=default_timezone,
                scheduler=scheduler,
                start=start,
            )
            self._fingerprint = fingerprint
            self._on_fatal = on_fatal
            self._initialized = True

    async def _start(
        self,
        jobs: list[JobDefinition],
        *,
        log: JobLogger,
        lock_store: LockStoreOptions | LockStoreConnection | None,
        is_enabled: EnablementPredicate | None,
        notifier: NotifierConfig | Notifier | None,
        fatal_on_lease_failure: bool,
        namespace: str,
        default_timezone: str,
        scheduler: Any,
        start: bool,
    ) -> None:
        connection: LockStoreConnection | None = None
        if isinstance(lock_store, LockStoreOptions):
            connection = await LockStoreConnection.connect(lock_store, logger=log)
        elif isinstance(lock_store, LockStoreConnection):
            connection = lock_store
            await connection.verify()

        coordinator = (
            LeaseCoordinator(connection.nodes, namespace=namespace, logger=log)
            if connection is not None
            else None
        )
        if isinstance(notifier, NotifierConfig):
            notifier = build_notifier(notifier, log)
        dispatcher = NotificationDispatcher(notifier, logger=log)
        engine = RetryEngine(dispatcher, logger=log)
        gate = EnablementGate(is_enabled, logger=log)
        timers = TimerBackend(scheduler, timezone=default_timezone, logger=log)

        self._log = log
        self._connection = connection
        self._coordinator = coordinator
        self._dispatcher = dispatcher
        self._engine = engine
        self._timers = timers
        self._default_timezone = default_timezone
        self._fatal_error = None
        self._stop_event = asyncio.Event()
        self._jobs = {}
        self._triggers = {}

        scheduled = 0
        for job in jobs:
            self._jobs[job.id] = job
            self._triggers[job.id] = TriggerEntryPoint(
                job,
                engine=engine,
                gate=gate,
                coordinator=coordinator,
                fatal_on_lease_failure=fatal_on_lease_failure,
                logger=log,
            )
            if not job.is_schedulable:
                log.debug("job_not_scheduled", job_id=job.id, enabled=job.enabled)
                continue
            timers.add(job.id, job.schedule, self._tick_handler(job.id), timezone=job.timezone)
            scheduled += 1

        if start:
            timers.start()
        log.info(
            "fleetcron_initialized",
            jobs=len(jobs),
            scheduled=scheduled,
            leases=coordinator is not None,
            notifier=getattr(notifier, "name", None),
        )

    async def shutdown(self, wait: bool = True, drain_timeout: float | None = 10.0) -> None:
        """Stop timers, finish or cancel in-flight ticks, close the connection.

        Pending retry timers of cancelled ticks are lost.
        """
        if not self._initialized:
            return
        self._log.info("fleetcron_shutting_down", inflight=len(self._inflight), wait=wait)
        if self._timers is not None:
            self._timers.stop()

        inflight = list(self._inflight)
        if not wait:
            for task in inflight:
                task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

        if self._dispatcher is not None:
            await self._dispatcher.drain(timeout=drain_timeout)
        if self._connection is not None:
            await self._connection.close()

        self._initialized = False
        self._fingerprint = None
        self._connection = None
        self._coordinator = None
        if self._stop_event is not None:
            self._stop_event.set()
        self._log.info("fleetcron_shutdown")

    async def serve(self) -> None:
        """Run until ``shutdown()`` or a fatal tick error.

        Raises:
            LeaseAcquisitionError: A scheduled tick failed under the fatal lease policy
        """
        if not self._initialized or self._stop_event is None:
            raise ConfigError("CronService.serve() called before initialize()")
        await self._stop_event.wait()
        if self._fatal_error is not None:
            await self.shutdown(wait=False)
            raise self._fatal_error

    # === Ticks ===

    def _tick_handler(self, job_id: str) -> Callable[[], Any]:
        async def handler() -> None:
            self._spawn(job_id)

        return handler

    def _spawn(self, job_id: str) -> asyncio.Task[TickResult | None]:
        task = asyncio.get_running_loop().create_task(
            self._scheduled_tick(job_id), name=f"fleetcron-tick-{job_id}"
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _scheduled_tick(self, job_id: str) -> TickResult | None:
        try:
            with LogContext(tick_source="schedule"):
                return await self._run_tick(job_id)
        except LeaseAcquisitionError as e:
            self._handle_fatal(e)
            return None

    async def _run_tick(self, job_id: str) -> TickResult:
        trigger = self._triggers[job_id]
        self._stats.ticks_fired += 1
        try:
            result = await trigger.fire()
        except LeaseAcquisitionError as e:
            self._stats.last_tick = datetime.now(UTC)
            self._stats.last_error = str(e)
            raise
        self._stats.record(result)
        return result

    def _handle_fatal(self, error: BaseException) -> None:
        self._fatal_error = error
        self._log.error("fatal_tick_error", error=str(error), error_type=type(error).__name__)
        if self._on_fatal is not None:
            self._on_fatal(error)
        if self._stop_event is not None:
            self._stop_event.set()

    async def trigger(self, job_id: str) -> TickResult:
        """Run one tick of ``job_id`` now, through gate, lease and retries.

        Raises:
            KeyError: Unknown job
            LeaseAcquisitionError: Only under the fatal lease policy
        """
        self._require_initialized()
        if job_id not in self._triggers:
            raise KeyError(f"Job not found: {job_id}")
        return await self._run_tick(job_id)

    # === Ad-hoc jobs ===

    def schedule_job(
        self,
        name: str,
        schedule_at: Any,
        callback: JobCallback,
        max_attempts: int = 1,
        retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS,
        *,
        timezone: str | None = None,
    ) -> JobDefinition:
        """Schedule a callback without a lease.

        Every instance that calls this runs the job; use it for
        single-instance deployments or non-exclusive work.
        ``max_attempts <= 0`` is treated as 1.
        """
        self._require_initialized()
        job = JobDefinition(
            id=name,
            callback=callback,
            schedule=schedule_at,
            timezone=timezone,
            max_attempts=max(1, int(max_attempts)),
            retry_interval_seconds=retry_interval_seconds,
        )
        if job.id in self._jobs:
            raise DuplicateJobError(job.id)
        trigger = TriggerEntryPoint(job, engine=self._engine, logger=self._log)
        self._timers.add(job.id, job.schedule, self._tick_handler(job.id), timezone=timezone)
        self._jobs[job.id] = job
        self._triggers[job.id] = trigger
        self._log.info("adhoc_job_scheduled", job_id=job.id, max_attempts=job.max_attempts)
        return job

    # === Introspection ===

    def stats(self) -> ServiceStats:
        """Snapshot of the service counters."""
        snapshot = replace(self._stats)
        if self._dispatcher is not None:
            snapshot.notifications_sent = self._dispatcher.delivered
            snapshot.notifications_failed = self._dispatcher.failed
        return snapshot

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ConfigError("CronService is not initialized")


async def create_service(
    jobs: Iterable[JobDefinition],
    settings: FleetCronSettings | None = None,
    **overrides: Any,
) -> CronService:
    """Build and initialize a service from ``FLEETCRON_*`` settings.

    Keyword ``overrides`` are passed to ``initialize()`` and win over settings.
    """
    settings = settings or FleetCronSettings()
    options: dict[str, Any] = {
        "lock_store": settings.lock_store_options(),
        "notifier": settings.notifier_config(),
        "fatal_on_lease_failure": settings.fatal_on_lease_failure,
        "namespace": settings.lock_namespace,
        "default_timezone": settings.default_timezone,
    }
    options.update(overrides)
    service = CronService()
    await service.initialize(jobs, **options)
    return service


__all__ = ["CronService", "FatalHandler", "ServiceStats", "create_service"]
