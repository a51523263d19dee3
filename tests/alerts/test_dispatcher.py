"""Tests for the fire-and-forget notification dispatcher."""

import asyncio

from fleetcron.alerts.dispatcher import NotificationDispatcher


class SlowNotifier:
    name = "slow"

    def __init__(self):
        self.delivered = []

    async def notify(self, job_id, error):
        await asyncio.sleep(0.05)
        self.delivered.append(job_id)


async def test_dispatch_returns_before_delivery():
    notifier = SlowNotifier()
    dispatcher = NotificationDispatcher(notifier)
    task = dispatcher.dispatch("job", RuntimeError("x"))
    assert task is not None
    assert notifier.delivered == []
    assert dispatcher.pending == 1
    await dispatcher.drain()
    assert notifier.delivered == ["job"]
    assert dispatcher.delivered == 1
    assert dispatcher.pending == 0


async def test_delivery_failure_is_contained(failing_notifier, recording_logger):
    dispatcher = NotificationDispatcher(failing_notifier, logger=recording_logger)
    task = dispatcher.dispatch("job", RuntimeError("x"))
    await task
    assert task.exception() is None
    assert dispatcher.failed == 1
    assert recording_logger.has("notification_failed job_id=job transport=recording", level="error")


async def test_no_notifier_is_noop():
    dispatcher = NotificationDispatcher(None)
    assert dispatcher.dispatch("job", RuntimeError("x")) is None
    await dispatcher.drain()


async def test_drain_timeout_logs(recording_logger):
    class Hanging:
        name = "hanging"

        async def notify(self, job_id, error):
            await asyncio.sleep(10)

    dispatcher = NotificationDispatcher(Hanging(), logger=recording_logger)
    task = dispatcher.dispatch("job", RuntimeError("x"))
    await dispatcher.drain(timeout=0.01)
    assert recording_logger.has("notifications_not_drained", level="warn")
    task.cancel()
