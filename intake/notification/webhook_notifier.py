from collections.abc import Mapping

import httpx

from intake.logging.logger import Log
from intake.notification.base import BaseNotifier, NotificationResult


class WebhookNotifier(BaseNotifier):
    """POSTs notifications as JSON to a configured webhook URL."""

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: int,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def notify(self, owner_id: str, payload: Mapping[str, object]) -> NotificationResult:
        body = {"owner_id": owner_id, **payload}
        try:
            response = self._client.post(self._url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            Log.warning(f"Notification delivery failed: {exc}", owner_id=owner_id)
            return NotificationResult(failed=1)
        return NotificationResult(sent=1)
