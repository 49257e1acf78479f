"""Fake notification sink — records notifications for testing."""

from uuid import uuid4

from marketplace.notifications.port import NotificationSink


class FakeNotificationSink(NotificationSink):
    """Sink that records notifications in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        """Configure the fake sink behavior for testing."""
        self.should_succeed = should_succeed

    def send(self, user_id, title, message, kind, reference=None) -> None:
        if not self.should_succeed:
            raise ConnectionError("Notification sink unavailable")

        self.sent.append(
            {
                "notification_id": f"ntf-{uuid4().hex[:12]}",
                "user_id": user_id,
                "title": title,
                "message": message,
                "kind": kind,
                "reference": reference,
            }
        )

    def for_user(self, user_id) -> list[dict]:
        return [n for n in self.sent if n["user_id"] == str(user_id)]

    def reset(self):
        self.sent.clear()
        self.should_succeed = True
