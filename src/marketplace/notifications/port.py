"""Notification sink port — abstract interface for customer notifications."""

from abc import ABC, abstractmethod


class NotificationSink(ABC):
    """Fire-and-forget destination for customer notifications."""

    @abstractmethod
    def send(
        self,
        user_id: str,
        title: str,
        message: str,
        kind: str,
        reference: str | None = None,
    ) -> None:
        """Deliver a notification. Adapters may raise; callers do not rely on delivery."""
        ...
