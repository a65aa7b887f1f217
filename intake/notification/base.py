from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class NotificationResult:
    """Delivery counters reported by a notifier."""

    sent: int = 0
    failed: int = 0


class BaseNotifier(ABC):
    """Contract for owner notification adapters.

    Implementations report failures through NotificationResult and never raise.
    """

    @abstractmethod
    def notify(self, owner_id: str, payload: Mapping[str, object]) -> NotificationResult:
        """Deliver one notification to the owner of a session."""
