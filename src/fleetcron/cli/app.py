"""
Root Typer application for the fleetcron CLI.

Jobs are plain Python: ``TARGET`` is ``module:attribute`` naming a list of
``JobDefinition`` objects, or a zero-argument callable returning one::

    fleetcron validate myapp.jobs:JOBS
    fleetcron run myapp.jobs:JOBS --redis-url redis://redis-a:6379/0
    fleetcron trigger myapp.jobs:JOBS nightly-report

Exit codes: 0 on clean shutdown, 1 on a fatal error (bad job list,
unreachable lock backend, lease failure under the fatal policy).
"""

from __future__ import annotations

import asyncio
import contextlib
import importlib
import signal
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from fleetcron.core.durations import format_duration
from fleetcron.core.errors import FleetCronError, LeaseAcquisitionError, is_fatal
from fleetcron.core.logging import configure_logging
from fleetcron.core.settings import FleetCronSettings
from fleetcron.jobs.models import JobDefinition, validate_jobs
from fleetcron.scheduling.service import CronService, create_service
from fleetcron.scheduling.timers import build_trigger
from fleetcron.scheduling.trigger import TickResult

app = typer.Typer(
    name="fleetcron",
    help="fleetcron — cron jobs for a fleet, one run per tick.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("fleetcron")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"fleetcron {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """fleetcron CLI — validate, run and trigger distributed cron jobs."""


# ── Helpers ──────────────────────────────────────────────────────────────


def load_jobs(target: str) -> list[JobDefinition]:
    """Import ``module:attribute`` and return its job list."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"expected MODULE:ATTRIBUTE, got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name!r}: {e}") from e
    try:
        obj = getattr(module, attr)
    except AttributeError as e:
        raise typer.BadParameter(f"{module_name!r} has no attribute {attr!r}") from e
    if callable(obj) and not isinstance(obj, (list, tuple)):
        obj = obj()
    return list(obj)


def _fail(error: BaseException) -> typer.Exit:
    err_console.print(f"[red]{type(error).__name__}:[/red] {error}")
    return typer.Exit(code=1)


def _settings(
    redis_url: list[str] | None,
    fatal_on_lease_failure: bool | None,
    log_level: str | None,
    json_logs: bool | None,
    namespace: str | None,
) -> FleetCronSettings:
    settings = FleetCronSettings()
    overrides: dict[str, Any] = {}
    if redis_url:
        overrides["redis_urls"] = redis_url
    if fatal_on_lease_failure is not None:
        overrides["fatal_on_lease_failure"] = fatal_on_lease_failure
    if log_level:
        overrides["log_level"] = log_level
    if json_logs is not None:
        overrides["log_json"] = json_logs
    if namespace:
        overrides["lock_namespace"] = namespace
    return settings.model_copy(update=overrides)


def _jobs_table(jobs: list[JobDefinition]) -> Table:
    table = Table(title="Jobs", show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Schedule")
    table.add_column("Attempts", justify="right")
    table.add_column("Retry")
    table.add_column("Lease TTL")
    table.add_column("Enabled")
    for job in jobs:
        table.add_row(
            job.id,
            str(job.schedule) if job.schedule is not None else "-",
            str(job.max_attempts),
            format_duration(job.retry_interval_seconds),
            format_duration(job.lease_ttl_seconds),
            "yes" if job.enabled else "[dim]no[/dim]",
        )
    return table


async def _serve(jobs: list[JobDefinition], settings: FleetCronSettings) -> None:
    service = await create_service(jobs, settings)
    loop = asyncio.get_running_loop()
    stopping: set[asyncio.Task[None]] = set()

    def request_stop() -> None:
        task = loop.create_task(service.shutdown())
        stopping.add(task)
        task.add_done_callback(stopping.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_stop)

    await service.serve()
    if stopping:
        await asyncio.gather(*stopping)


async def _trigger_once(
    jobs: list[JobDefinition], settings: FleetCronSettings, job_id: str
) -> TickResult:
    service: CronService = await create_service(jobs, settings, start=False)
    try:
        return await service.trigger(job_id)
    finally:
        await service.shutdown()


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("validate")
def validate(
    target: str = typer.Argument(..., help="MODULE:ATTRIBUTE naming the job list"),
) -> None:
    """Validate job ids and schedules without connecting to anything."""
    try:
        jobs = validate_jobs(load_jobs(target))
        for job in jobs:
            if job.is_schedulable:
                build_trigger(job.schedule, job.timezone)
    except FleetCronError as e:
        raise _fail(e) from e
    console.print(_jobs_table(jobs))
    console.print(f"[green]✓[/green] {len(jobs)} job(s) valid")


@app.command("run")
def run(
    target: str = typer.Argument(..., help="MODULE:ATTRIBUTE naming the job list"),
    redis_url: list[str] | None = typer.Option(
        None, "--redis-url", "-r", help="Lock backend node (repeat for a quorum)."
    ),
    fatal_on_lease_failure: bool | None = typer.Option(
        None,
        "--fatal-on-lease-failure/--skip-on-lease-failure",
        help="Exit when a lease cannot be acquired instead of skipping the tick.",
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs"),
    namespace: str | None = typer.Option(None, "--namespace", help="Lease key prefix."),
) -> None:
    """Schedule the jobs and serve until interrupted."""
    settings = _settings(redis_url, fatal_on_lease_failure, log_level, json_logs, namespace)
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    jobs = load_jobs(target)
    try:
        asyncio.run(_serve(jobs, settings))
    except FleetCronError as e:
        if is_fatal(e) or isinstance(e, LeaseAcquisitionError):
            raise _fail(e) from e
        raise


@app.command("trigger")
def trigger(
    target: str = typer.Argument(..., help="MODULE:ATTRIBUTE naming the job list"),
    job_id: str = typer.Argument(..., help="Job to run once"),
    redis_url: list[str] | None = typer.Option(None, "--redis-url", "-r"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Run one tick of a job now, through the enablement gate, lease and retries."""
    settings = _settings(redis_url, None, log_level, None, None)
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    jobs = load_jobs(target)
    try:
        result = asyncio.run(_trigger_once(jobs, settings, job_id))
    except KeyError as e:
        err_console.print(f"[red]Unknown job:[/red] {job_id}")
        raise typer.Exit(code=1) from e
    except FleetCronError as e:
        raise _fail(e) from e

    table = Table(title=f"Tick: {job_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in result.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)
    if result.state.value in ("FAILED", "ERRORED"):
        raise typer.Exit(code=1)
