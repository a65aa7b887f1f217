from intake.config.settings import Settings
from intake.notification.base import BaseNotifier
from intake.notification.log_notifier import LogNotifier
from intake.notification.webhook_notifier import WebhookNotifier


class NotifierFactory:
    """Creates the configured notification adapter."""

    @staticmethod
    def create(settings: Settings) -> BaseNotifier:
        provider = settings.notification_provider.lower()
        if provider == "log":
            return LogNotifier()
        if provider == "webhook":
            url = settings.notification_webhook_url.strip()
            if not url:
                raise ValueError(
                    "notification_webhook_url is required for notification_provider=webhook"
                )
            return WebhookNotifier(
                url=url,
                timeout_seconds=settings.notification_timeout_seconds,
            )
        raise ValueError(
            f"Unknown notification provider '{provider}'. Choose from: ['log', 'webhook']"
        )
