"""Console notifier for development and testing."""

from __future__ import annotations

from fleetcron.alerts.protocol import (
    MessageBuilder,
    check_template,
    describe_error,
    render_message,
)
from fleetcron.core.logging import JobLogger, resolve_logger


class ConsoleNotifier:
    """
    Writes failure alerts to the log instead of a remote endpoint.

    Also records every alert in ``sent`` so tests can inspect them.
    """

    name = "console"

    def __init__(
        self,
        *,
        message_template: str | MessageBuilder | None = None,
        logger: JobLogger | None = None,
    ):
        check_template(message_template)
        self._message_template = message_template
        self._log = resolve_logger(logger)
        self.sent: list[tuple[str, BaseException]] = []

    async def notify(self, job_id: str, error: BaseException) -> None:
        self.sent.append((job_id, error))
        self._log.warn(
            "job_failure_alert",
            job_id=job_id,
            text=render_message(self._message_template, job_id, error),
            **describe_error(error),
        )
