"""Built-in notifier transports."""

from fleetcron.alerts.channels.console import ConsoleNotifier
from fleetcron.alerts.channels.slack import SlackNotifier
from fleetcron.alerts.channels.webhook import WebhookNotifier

__all__ = ["ConsoleNotifier", "SlackNotifier", "WebhookNotifier"]
