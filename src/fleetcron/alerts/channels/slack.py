"""Slack incoming-webhook notifier.

Posts message attachments in the incoming webhook format::

    {
        "channel": "#alerts",
        "text": "<!channel> Error in cron nightly-report. ...",
        "attachments": [
            {
                "text": "connection reset by peer",
                "title": "Cron nightly-report Failed",
                "color": "#de2618"
            }
        ]
    }

Docs: https://api.slack.com/messaging/webhooks
"""

from __future__ import annotations

from typing import Any

import httpx

from fleetcron.alerts.protocol import (
    MessageBuilder,
    check_template,
    describe_error,
    render_message,
)
from fleetcron.core.errors import NotifierDeliveryError

FAILURE_COLOR = "#de2618"


class SlackNotifier:
    """
    Slack webhook notifier.

    Raises ``NotifierDeliveryError`` on transport errors and non-2xx
    responses; the dispatcher logs and swallows it.
    """

    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        *,
        channel_name: str | None = None,
        message_template: str | MessageBuilder | None = None,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._webhook_url = webhook_url
        self._channel_name = channel_name
        check_template(message_template)
        self._message_template = message_template
        self._headers = headers or {}
        self._timeout = timeout_seconds
        self._client = client

    def build_payload(self, job_id: str, error: BaseException) -> dict[str, Any]:
        """Build the Slack message body."""
        payload: dict[str, Any] = {
            "text": render_message(self._message_template, job_id, error),
            "attachments": [
                {
                    "text": describe_error(error)["message"],
                    "title": f"Cron {job_id} Failed",
                    "color": FAILURE_COLOR,
                }
            ],
        }
        if self._channel_name:
            payload["channel"] = self._channel_name
        return payload

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json", **self._headers}
        return await client.post(self._webhook_url, json=payload, headers=headers)

    async def notify(self, job_id: str, error: BaseException) -> None:
        """Send the failure alert to Slack."""
        payload = self.build_payload(job_id, error)
        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await self._post(client, payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotifierDeliveryError(
                f"Slack webhook returned {e.response.status_code}", cause=e
            ).with_context(
                job_id=job_id,
                transport=self.name,
                http_status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise NotifierDeliveryError(
                f"Slack webhook unreachable: {e}", cause=e
            ).with_context(job_id=job_id, transport=self.name) from e
