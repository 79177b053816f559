# coursepay/notifications.py
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class Notifier(ABC):
    """Outbound e-mail seam. Delivery lives in the notification module."""

    @abstractmethod
    def notify(self, to: str, subject: str, body: str) -> None:
        pass


class LogNotifier(Notifier):
    def notify(self, to: str, subject: str, body: str) -> None:
        logger.info("notification_queued", to=to, subject=subject)


def send_quietly(notifier: Notifier, to: str | None, subject: str, body: str) -> None:
    """Fire-and-forget wrapper for BackgroundTasks: a failed e-mail never fails a payment."""
    if not to:
        return
    try:
        notifier.notify(to, subject, body)
    except Exception:
        logger.exception("notification_failed", to=to, subject=subject)
