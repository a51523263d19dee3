"""
Failure alerting.

Provides the notifier protocol, built-in transports (Slack, webhook,
console), the transport registry and the fire-and-forget dispatcher.
"""

from fleetcron.alerts.channels import ConsoleNotifier, SlackNotifier, WebhookNotifier
from fleetcron.alerts.dispatcher import NotificationDispatcher
from fleetcron.alerts.protocol import (
    DEFAULT_MESSAGE_TEMPLATE,
    Notifier,
    NotifierConfig,
    TransportType,
    check_template,
    render_message,
)
from fleetcron.alerts.registry import available_transports, build_notifier, register_transport

__all__ = [
    # Protocol
    "Notifier",
    "NotifierConfig",
    "TransportType",
    "DEFAULT_MESSAGE_TEMPLATE",
    "render_message",
    "check_template",
    # Implementations
    "ConsoleNotifier",
    "SlackNotifier",
    "WebhookNotifier",
    # Dispatch
    "NotificationDispatcher",
    # Registry
    "build_notifier",
    "register_transport",
    "available_transports",
]
