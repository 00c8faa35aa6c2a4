"""
Outbound notifications (ticket confirmations, waitlist slots, team invites).

Delivery belongs to an external service. The core only hands over
(email, kind, context) after its own transaction has committed, and a
failed delivery never fails the admission, purchase or team operation
that produced it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

import httpx

from campusfest.core.config import get_settings
from campusfest.core.logging import get_logger
from campusfest.core.metrics import notification_failures

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    TICKET_ISSUED = "ticket_issued"
    ORDER_PLACED = "order_placed"
    ORDER_APPROVED = "order_approved"
    ORDER_REJECTED = "order_rejected"
    WAITLIST_SLOT_AVAILABLE = "waitlist_slot_available"
    TEAM_INVITE = "team_invite"
    TEAM_REGISTERED = "team_registered"


@dataclass(frozen=True)
class Notification:
    email: str
    kind: NotificationKind
    context: dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    """Delivery channel for notifications."""

    @abstractmethod
    async def notify(self, email: str, kind: NotificationKind, context: dict[str, Any]) -> None:
        pass


class LoggingNotifier(Notifier):
    """Records notifications in the log only. Used when no webhook is configured."""

    async def notify(self, email: str, kind: NotificationKind, context: dict[str, Any]) -> None:
        logger.info("notification_logged", email=email, kind=kind.value, **context)


class WebhookNotifier(Notifier):
    """Posts each notification as JSON to the delivery service."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def notify(self, email: str, kind: NotificationKind, context: dict[str, Any]) -> None:
        payload = {"email": email, "template": kind.value, "context": context}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
        logger.info("notification_sent", email=email, kind=kind.value)


async def dispatch(notifier: Notifier, notifications: Iterable[Notification]) -> None:
    """Deliver notifications one by one, logging and swallowing failures."""
    for notification in notifications:
        try:
            await notifier.notify(notification.email, notification.kind, notification.context)
        except Exception as e:
            notification_failures.labels(kind=notification.kind.value).inc()
            logger.error(
                "notification_failed",
                email=notification.email,
                kind=notification.kind.value,
                error=str(e),
            )


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Configured notifier singleton (FastAPI dependency)."""
    global _notifier
    if _notifier is None:
        settings = get_settings()
        if settings.NOTIFIER_WEBHOOK_URL:
            _notifier = WebhookNotifier(settings.NOTIFIER_WEBHOOK_URL, settings.NOTIFIER_TIMEOUT_SECONDS)
        else:
            _notifier = LoggingNotifier()
    return _notifier
