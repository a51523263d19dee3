"""Environment-driven settings for fleetcron processes.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Every replica of a fleet runs the same image; the lock backend, the
    alert webhook and the lease policy come from the environment.

    - **Pydantic validation:** Type-checked at startup, not at the first tick
    - **Environment-driven:** ``FLEETCRON_*`` env vars and ``.env`` files
    - **Sensible defaults:** No lock backend and no notifier out of the box

Examples:
    >>> import os
    >>> os.environ["FLEETCRON_REDIS_URLS"] = '["redis://redis-a:6379/1"]'
    >>> settings = FleetCronSettings()
    >>> settings.lock_store_options().urls
    ['redis://redis-a:6379/1']

Tags:
    settings, configuration, pydantic, environment, fleetcron
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from fleetcron.alerts.protocol import NotifierConfig
    from fleetcron.locks.connection import LockStoreOptions


class FleetCronSettings(BaseSettings):
    """Process-wide settings.

    Fields
    ──────
    redis_urls              : Lock backend nodes; empty disables leases
    lock_namespace          : Prefix for lease keys
    fatal_on_lease_failure  : Propagate lease failures instead of skipping
    default_timezone        : Timezone for jobs that don't set one
    log_level / log_json    : structlog configuration
    notifier_*              : Built-in failure notifier
    """

    model_config = SettingsConfigDict(
        env_prefix="FLEETCRON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Lock backend ─────────────────────────────────────────────
    redis_urls: list[str] = Field(default_factory=list)
    redis_socket_timeout: float = 5.0
    redis_connect_timeout: float = 5.0
    lock_namespace: str = "fleetcron:lease:"
    fatal_on_lease_failure: bool = False

    # ── Scheduling ───────────────────────────────────────────────
    default_timezone: str = "UTC"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Notifier ─────────────────────────────────────────────────
    notifier_transport: str | None = None
    notifier_webhook_url: str | None = None
    notifier_channel: str = "#alerts"
    notifier_message_template: str | None = None

    def lock_store_options(self) -> LockStoreOptions | None:
        """Lock store options, or None when no Redis node is configured."""
        from fleetcron.locks.connection import LockStoreOptions

        if not self.redis_urls:
            return None
        return LockStoreOptions(
            urls=self.redis_urls,
            socket_timeout=self.redis_socket_timeout,
            connect_timeout=self.redis_connect_timeout,
        )

    def notifier_config(self) -> NotifierConfig | None:
        """Notifier configuration, or None when no transport is set."""
        from fleetcron.alerts.protocol import NotifierConfig

        if not self.notifier_transport:
            return None
        return NotifierConfig(
            transport=self.notifier_transport,
            webhook_url=self.notifier_webhook_url,
            channel_name=self.notifier_channel,
            message_template=self.notifier_message_template,
        )
