from collections.abc import Mapping

from intake.logging.logger import Log
from intake.notification.base import BaseNotifier, NotificationResult


class LogNotifier(BaseNotifier):
    """Writes notifications to the application log. Used in dev and tests."""

    def notify(self, owner_id: str, payload: Mapping[str, object]) -> NotificationResult:
        Log.info(
            f"Notification: {payload.get('title', '')} {payload.get('body', '')}".strip(),
            owner_id=owner_id,
            session_id=payload.get("session_id"),
        )
        return NotificationResult(sent=1)
