"""Notification sink registry.

``notify`` is the only entry point the domain uses. Delivery is best effort:
a failing sink is logged and never interrupts the caller.
"""

import structlog

from marketplace.notifications.fake_sink import FakeNotificationSink
from marketplace.notifications.port import NotificationSink

logger = structlog.get_logger(__name__)

_current_sink: NotificationSink | None = None


def get_sink() -> NotificationSink:
    """Return the current sink. Defaults to FakeNotificationSink."""
    global _current_sink
    if _current_sink is None:
        _current_sink = FakeNotificationSink()
    return _current_sink


def set_sink(sink: NotificationSink) -> None:
    global _current_sink
    _current_sink = sink


def reset_sink() -> None:
    global _current_sink
    _current_sink = None


def notify(user_id, title, message, kind, reference=None) -> bool:
    """Send a notification. Returns False instead of raising when the sink fails."""
    try:
        get_sink().send(str(user_id), title, message, kind, reference=reference)
    except Exception as exc:
        logger.error("notification_failed", user_id=str(user_id), kind=kind, reference=reference, error=str(exc))
        return False
    return True
