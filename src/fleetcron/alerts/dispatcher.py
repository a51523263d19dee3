"""Notification dispatcher - fire-and-forget failure alerts.

Manifesto:
    Alerting is a side channel. The retry engine hands a failure to the
    dispatcher and moves on; it never waits for delivery and never sees a
    delivery error. A dead webhook costs a log line, not a retry decision.

Flow::

    RetryEngine ── dispatch(job_id, error) ──► create_task(_deliver)
                   (returns immediately)            │
                                                    ├─ await notifier.notify(...)
                                                    └─ except Exception: log

Tags:
    fleetcron, alerts, fire-and-forget, isolation
"""

from __future__ import annotations

import asyncio

from fleetcron.alerts.protocol import Notifier
from fleetcron.core.logging import JobLogger, resolve_logger


class NotificationDispatcher:
    """Runs notifier deliveries as background tasks.

    Example:
        >>> dispatcher = NotificationDispatcher(SlackNotifier(url, channel_name="#ops"))
        >>> dispatcher.dispatch("nightly-report", error)   # returns at once
        >>> await dispatcher.drain()                        # on shutdown
    """

    def __init__(self, notifier: Notifier | None = None, *, logger: JobLogger | None = None):
        self._notifier = notifier
        self._log = resolve_logger(logger)
        self._pending: set[asyncio.Task[None]] = set()
        self.delivered = 0
        self.failed = 0

    @property
    def notifier(self) -> Notifier | None:
        return self._notifier

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, job_id: str, error: BaseException) -> asyncio.Task[None] | None:
        """Schedule delivery of a failure alert. Never raises."""
        if self._notifier is None:
            return None
        try:
            task = asyncio.get_running_loop().create_task(
                self._deliver(job_id, error), name=f"fleetcron-notify-{job_id}"
            )
        except Exception as e:
            self.failed += 1
            self._log.error("notification_dispatch_failed", job_id=job_id, error=str(e))
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, job_id: str, error: BaseException) -> None:
        notifier = self._notifier
        if notifier is None:
            return
        try:
            await notifier.notify(job_id, error)
        except Exception as e:
            self.failed += 1
            self._log.error(
                "notification_failed",
                job_id=job_id,
                transport=getattr(notifier, "name", type(notifier).__name__),
                error=str(e),
            )
            return
        self.delivered += 1
        self._log.debug("notification_sent", job_id=job_id)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries (bounded by ``timeout``)."""
        if not self._pending:
            return
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_pending:
            self._log.warn("notifications_not_drained", pending=len(still_pending))
