"""Tests for CronService lifecycle, triggers and ad-hoc jobs."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetcron.alerts.protocol import NotifierConfig
from fleetcron.core.errors import (
    AlreadyInitializedError,
    ConfigError,
    DuplicateJobError,
    InvalidLoggerError,
    LeaseAcquisitionError,
    LockBackendConnectionError,
    ValidationError,
)
from fleetcron.core.settings import FleetCronSettings
from fleetcron.jobs.models import JobDefinition, TickState
from fleetcron.locks.connection import LockStoreConnection, LockStoreOptions
from fleetcron.scheduling.service import CronService, create_service


@pytest.fixture
async def service():
    svc = CronService()
    yield svc
    await svc.shutdown(wait=False)


def job(job_id="report", callback=None, **kwargs):
    return JobDefinition(id=job_id, callback=callback or (lambda: None), **kwargs)


class TestInitializeValidation:
    async def test_duplicate_ids_rejected_before_start(self, service):
        with pytest.raises(DuplicateJobError):
            await service.initialize([job("a"), job("a")])
        assert not service.is_initialized
        assert service.timers is None

    async def test_non_job_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.initialize([{"id": "nightly report"}])

    async def test_bad_logger_rejected(self, service):
        class NoDebug:
            def log(self, m): ...
            def error(self, m): ...
            def warn(self, m): ...

        with pytest.raises(InvalidLoggerError):
            await service.initialize([job()], logger=NoDebug())

    async def test_bad_schedule_rejected_before_connecting(self, service):
        connection = MagicMock(spec=LockStoreConnection)
        with pytest.raises(ValidationError):
            await service.initialize([job(schedule="every day")], lock_store=connection)
        connection.verify.assert_not_called()

    async def test_non_callable_predicate_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.initialize([job()], is_enabled=True)

    async def test_unreachable_lock_backend_is_fatal(self, service):
        client = MagicMock()
        client.register_script.return_value = AsyncMock()
        client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        client.aclose = AsyncMock()
        with patch("fleetcron.locks.redis.aioredis.from_url", return_value=client):
            with pytest.raises(LockBackendConnectionError):
                await service.initialize(
                    [job(schedule="* * * * *")],
                    lock_store=LockStoreOptions(urls=["redis://down:6379/0"]),
                )
        assert not service.is_initialized


class TestInitializeLifecycle:
    async def test_registers_only_schedulable_jobs(self, service, memory_connection, recording_logger):
        jobs = [
            job("scheduled", schedule="0 2 * * *"),
            job("disabled", schedule="0 2 * * *", enabled=False),
            job("manual"),
        ]
        await service.initialize(jobs, lock_store=memory_connection, logger=recording_logger)

        assert service.is_initialized
        assert service.timers.running
        assert service.timers.has("scheduled")
        assert not service.timers.has("disabled")
        assert not service.timers.has("manual")
        assert service.coordinator is not None
        assert recording_logger.has("fleetcron_initialized")

    async def test_idempotent_for_same_config(self, service, memory_connection):
        jobs = [job(schedule="0 2 * * *")]
        await service.initialize(jobs, lock_store=memory_connection)
        timers = service.timers
        await service.initialize(jobs, lock_store=memory_connection)
        assert service.timers is timers

    async def test_conflicting_config_rejected(self, service, memory_connection):
        await service.initialize([job()], lock_store=memory_connection)
        with pytest.raises(AlreadyInitializedError):
            await service.initialize([job()], lock_store=memory_connection, fatal_on_lease_failure=True)

    async def test_shutdown_closes_connection(self, service, memory_connection):
        await service.initialize([job(schedule="0 2 * * *")], lock_store=memory_connection)
        await service.shutdown()
        assert memory_connection.closed
        assert not service.is_initialized
        assert not service.timers.running
        await service.shutdown()

    async def test_reinitialize_after_shutdown(self, service):
        await service.initialize([job()])
        await service.shutdown()
        await service.initialize([job(), job("other")])
        assert set(service.jobs) == {"report", "other"}

    async def test_without_lock_store_runs_unleased(self, service):
        await service.initialize([job()])
        assert service.coordinator is None
        assert (await service.trigger("report")).state is TickState.SUCCEEDED


class TestTrigger:
    async def test_manual_trigger_runs_pipeline(self, service, memory_connection, flaky):
        callback = flaky(failures=1)
        await service.initialize(
            [job(callback=callback, max_attempts=2, retry_interval_seconds=0)],
            lock_store=memory_connection,
        )
        result = await service.trigger("report")
        assert result.state is TickState.SUCCEEDED
        assert result.attempts == 2
        stats = service.stats()
        assert stats.ticks_fired == 1
        assert stats.chains_succeeded == 1

    async def test_disabled_job_reports_skipped(self, service, flaky):
        callback = flaky()
        await service.initialize([job(callback=callback, enabled=False)])
        result = await service.trigger("report")
        assert result.state is TickState.SKIPPED_DISABLED
        assert callback.calls == 0
        assert service.stats().ticks_skipped_disabled == 1

    async def test_gate_false_never_runs_job(self, service, flaky):
        callback = flaky()
        await service.initialize([job(callback=callback)], is_enabled=AsyncMock(return_value=False))
        assert (await service.trigger("report")).state is TickState.SKIPPED_DISABLED
        assert callback.calls == 0

    async def test_unknown_job(self, service):
        await service.initialize([job()])
        with pytest.raises(KeyError):
            await service.trigger("missing")

    async def test_trigger_before_initialize(self, service):
        with pytest.raises(ConfigError):
            await service.trigger("report")

    async def test_lease_held_elsewhere_is_skipped(self, service, memory_connection):
        for node in memory_connection.nodes:
            await node.try_acquire("fleetcron:lease:report", "other-instance", 5000)
        await service.initialize([job()], lock_store=memory_connection)
        result = await service.trigger("report")
        assert result.state is TickState.SKIPPED_LOCKED
        assert service.stats().ticks_skipped_locked == 1

    async def test_fatal_lease_policy_from_manual_trigger(self, service, memory_connection):
        for node in memory_connection.nodes:
            await node.try_acquire("fleetcron:lease:report", "other-instance", 5000)
        await service.initialize([job()], lock_store=memory_connection, fatal_on_lease_failure=True)
        with pytest.raises(LeaseAcquisitionError):
            await service.trigger("report")

    async def test_fatal_lease_policy_stops_serve(self, service, memory_connection):
        for node in memory_connection.nodes:
            await node.try_acquire("fleetcron:lease:soon", "other-instance", 10000)
        on_fatal = MagicMock()
        await service.initialize(
            [job("soon", schedule=datetime.now(UTC) + timedelta(milliseconds=100))],
            lock_store=memory_connection,
            fatal_on_lease_failure=True,
            on_fatal=on_fatal,
        )
        with pytest.raises(LeaseAcquisitionError):
            await asyncio.wait_for(service.serve(), timeout=3)
        on_fatal.assert_called_once()
        assert isinstance(service.fatal_error, LeaseAcquisitionError)
        assert not service.is_initialized

    async def test_notifications_counted(self, service, always_fails):
        await service.initialize(
            [job(callback=always_fails, max_attempts=2, retry_interval_seconds=0)],
            notifier=NotifierConfig(transport="console"),
        )
        result = await service.trigger("report")
        assert result.state is TickState.FAILED
        await service.shutdown()
        stats = service.stats()
        assert stats.chains_failed == 1
        assert stats.notifications_sent == 2


class TestScheduledTicks:
    async def test_scheduled_tick_runs_job(self, service, memory_connection):
        ran = asyncio.Event()
        await service.initialize(
            [job("soon", callback=ran.set, schedule=datetime.now(UTC) + timedelta(milliseconds=100))],
            lock_store=memory_connection,
        )
        await asyncio.wait_for(ran.wait(), timeout=3)
        await service.shutdown(wait=True)
        assert service.stats().chains_succeeded == 1

    async def test_serve_returns_after_shutdown(self, service):
        await service.initialize([job()])
        serving = asyncio.create_task(service.serve())
        await asyncio.sleep(0)
        await service.shutdown()
        await asyncio.wait_for(serving, timeout=1)

    async def test_serve_before_initialize(self, service):
        with pytest.raises(ConfigError):
            await service.serve()


class TestAdHocJobs:
    async def test_schedule_job_clamps_attempts(self, service):
        await service.initialize([])
        definition = service.schedule_job("cleanup", "*/5 * * * *", lambda: None, max_attempts=0)
        assert definition.max_attempts == 1
        assert service.timers.has("cleanup")

    async def test_schedule_job_runs_without_lease(self, service, memory_connection, flaky):
        callback = flaky()
        for node in memory_connection.nodes:
            await node.try_acquire("fleetcron:lease:cleanup", "other-instance", 5000)
        await service.initialize([], lock_store=memory_connection)
        service.schedule_job("cleanup", "*/5 * * * *", callback, max_attempts=2, retry_interval_seconds=0)
        result = await service.trigger("cleanup")
        assert result.state is TickState.SUCCEEDED
        assert callback.calls == 1

    async def test_schedule_job_validates_name(self, service):
        await service.initialize([job()])
        with pytest.raises(ValidationError):
            service.schedule_job("bad name", "* * * * *", lambda: None)
        with pytest.raises(DuplicateJobError):
            service.schedule_job("report", "* * * * *", lambda: None)

    async def test_schedule_job_requires_initialize(self, service):
        with pytest.raises(ConfigError):
            service.schedule_job("cleanup", "* * * * *", lambda: None)


async def test_create_service_from_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FLEETCRON_REDIS_URLS", raising=False)
    settings = FleetCronSettings(lock_namespace="acme:lease:", notifier_transport="console")
    service = await create_service([job()], settings, start=False)
    try:
        assert service.is_initialized
        assert service.coordinator is None
        assert not service.timers.running
    finally:
        await service.shutdown()
