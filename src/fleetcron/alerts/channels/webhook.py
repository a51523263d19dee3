"""Generic webhook notifier.

Manifesto:
    Any HTTP endpoint should be a valid alert target. The generic webhook
    POSTs a flat JSON document so custom integrations (PagerDuty, Teams,
    internal incident tooling) work without dedicated transport code.

Payload::

    {"job_id": "...", "text": "...", "error_type": "...", "error": "...", "timestamp": "..."}
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx

from fleetcron.alerts.protocol import (
    MessageBuilder,
    check_template,
    describe_error,
    render_message,
)
from fleetcron.core.errors import NotifierDeliveryError


class WebhookNotifier:
    """POSTs failure alerts as JSON to a URL."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        *,
        message_template: str | MessageBuilder | None = None,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url
        check_template(message_template)
        self._message_template = message_template
        self._headers = headers or {}
        self._timeout = timeout_seconds
        self._client = client

    def build_payload(self, job_id: str, error: BaseException) -> dict[str, Any]:
        described = describe_error(error)
        payload: dict[str, Any] = {
            "job_id": job_id,
            "text": render_message(self._message_template, job_id, error),
            "error_type": described["error_type"],
            "error": described["message"],
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if "cause" in described:
            payload["cause"] = described["cause"]
        return payload

    async def notify(self, job_id: str, error: BaseException) -> None:
        payload = self.build_payload(job_id, error)
        headers = {"Content-Type": "application/json", **self._headers}
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            raise NotifierDeliveryError(f"Webhook delivery failed: {e}", cause=e).with_context(
                job_id=job_id, transport=self.name, url=self._url, http_status=status
            ) from e
