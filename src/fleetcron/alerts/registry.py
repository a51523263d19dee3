"""Transport registry: NotifierConfig -> Notifier."""

from __future__ import annotations

from collections.abc import Callable

from fleetcron.alerts.channels import ConsoleNotifier, SlackNotifier, WebhookNotifier
from fleetcron.alerts.protocol import Notifier, NotifierConfig, TransportType
from fleetcron.core.errors import ValidationError
from fleetcron.core.logging import JobLogger, resolve_logger

NotifierFactory = Callable[[NotifierConfig, JobLogger], Notifier]


def _require_url(config: NotifierConfig) -> str:
    if not config.webhook_url:
        raise ValidationError(
            f"{config.transport} notifier requires webhook_url", field="webhook_url"
        )
    return config.webhook_url


def _slack(config: NotifierConfig, logger: JobLogger) -> Notifier:
    return SlackNotifier(
        _require_url(config),
        channel_name=config.channel_name,
        message_template=config.message_template,
        headers=config.headers,
        timeout_seconds=config.timeout_seconds,
    )


def _webhook(config: NotifierConfig, logger: JobLogger) -> Notifier:
    return WebhookNotifier(
        _require_url(config),
        message_template=config.message_template,
        headers=config.headers,
        timeout_seconds=config.timeout_seconds,
    )


def _console(config: NotifierConfig, logger: JobLogger) -> Notifier:
    return ConsoleNotifier(message_template=config.message_template, logger=logger)


_TRANSPORTS: dict[str, NotifierFactory] = {
    TransportType.SLACK.value: _slack,
    TransportType.WEBHOOK.value: _webhook,
    TransportType.CONSOLE.value: _console,
}


def register_transport(name: str, factory: NotifierFactory) -> None:
    """Register a custom transport under ``name``."""
    _TRANSPORTS[name] = factory


def available_transports() -> list[str]:
    return sorted(_TRANSPORTS)


def build_notifier(
    config: NotifierConfig | None,
    logger: JobLogger | None = None,
) -> Notifier | None:
    """Build the notifier described by ``config``.

    Unknown transports are logged and ignored: the service runs without
    failure alerts rather than refusing to start.
    """
    if config is None:
        return None
    log = resolve_logger(logger)
    factory = _TRANSPORTS.get(config.transport)
    if factory is None:
        log.warn(
            "notifier_transport_unsupported",
            transport=config.transport,
            supported=available_transports(),
        )
        return None
    return factory(config, log)
