"""
Notifier protocol and configuration.

A notifier receives ``(job_id, error)`` for every failed attempt. Transports
are pluggable; the dispatcher in ``fleetcron.alerts.dispatcher`` isolates
them from the retry engine so a broken webhook can never change a job's
outcome.

Design Principles:
- Protocol over inheritance: any object with ``async notify(job_id, error)``
  is a notifier
- Configuration is data: ``NotifierConfig`` selects and parameterizes a
  built-in transport
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetcron.core.errors import ValidationError

MessageBuilder = Callable[[str, BaseException], str]

DEFAULT_MESSAGE_TEMPLATE = (
    "<!channel> Error in cron {job_id}. Check 'error while processing {job_id}' in logs"
)


class TransportType(str, Enum):
    """Built-in notifier transports."""

    SLACK = "slack"
    WEBHOOK = "webhook"
    CONSOLE = "console"


@runtime_checkable
class Notifier(Protocol):
    """Anything that can be told a job attempt failed."""

    @property
    def name(self) -> str:
        """Transport name for logs."""
        ...

    async def notify(self, job_id: str, error: BaseException) -> None:
        """Deliver a failure alert. May raise; the dispatcher contains it."""
        ...


class NotifierConfig(BaseModel):
    """Selects and parameterizes a built-in transport.

    ``message_template`` is either a format string using ``{job_id}`` and
    ``{error}``, or a callable ``(job_id, error) -> str``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    transport: str
    webhook_url: str | None = None
    channel_name: str | None = None
    message_template: str | MessageBuilder | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = 10.0

    @field_validator("message_template")
    @classmethod
    def template_renders(cls, value: str | MessageBuilder | None) -> str | MessageBuilder | None:
        try:
            check_template(value)
        except ValidationError as e:
            raise ValueError(e.message) from e
        return value


def check_template(template: str | MessageBuilder | None) -> None:
    """Render a format-string template once against sample values.

    Raises:
        ValidationError: Unknown placeholder or unbalanced braces
    """
    if template is None or callable(template):
        return
    try:
        template.format(job_id="job", error=RuntimeError("error"))
    except (KeyError, IndexError, ValueError, AttributeError) as e:
        raise ValidationError(
            f"message_template {template!r} cannot be rendered: {e!r}",
            field="message_template",
            value=template,
            cause=e,
        ) from e


def render_message(
    template: str | MessageBuilder | None,
    job_id: str,
    error: BaseException,
) -> str:
    """Render the human-readable alert text for a failure."""
    if template is None:
        template = DEFAULT_MESSAGE_TEMPLATE
    if callable(template):
        return template(job_id, error)
    return template.format(job_id=job_id, error=error)


def describe_error(error: BaseException) -> dict[str, Any]:
    """Minimal error description for alert payloads.

    Describes the raised error itself; a chained ``__cause__`` is added
    under ``cause`` and never replaces it.
    """
    described: dict[str, Any] = {"error_type": type(error).__name__, "message": str(error)}
    if error.__cause__ is not None:
        described["cause"] = f"{type(error.__cause__).__name__}: {error.__cause__}"
    return described
