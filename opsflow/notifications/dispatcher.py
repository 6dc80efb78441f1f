"""Notification dispatch for opsflow.

The engines hand notifications to a dispatcher and move on. Delivery (push,
email, SMS) happens outside this package; the default dispatcher writes each
notification to the `notifications` table for delivery workers to pick up.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from opsflow.database.event_repository import NotificationRepository
from opsflow.models.notification import Notification

logger = logging.getLogger(__name__)


def channels_for_severity(severity: str) -> List[str]:
    """Critical items also go out by SMS."""
    if severity == "critical":
        return ["push", "email", "sms"]
    return ["push", "email"]


class NotificationDispatcher:
    """Fire-and-forget dispatcher.

    Subclasses implement `deliver`. `notify` never raises: a failed
    notification is logged and dropped so it cannot undo the work item that
    triggered it.
    """

    def deliver(self, notification: Notification) -> None:
        raise NotImplementedError

    def notify(
        self,
        notification_type: str,
        recipient_id: str,
        title: str,
        body: str = "",
        data: Optional[Dict[str, Any]] = None,
        channels: Optional[List[str]] = None,
    ) -> Optional[Notification]:
        """Build and hand off one notification.

        Returns:
            The notification, or None if it could not be handed off
        """
        notification = Notification(
            id=str(uuid.uuid4()),
            type=notification_type,
            recipient_id=recipient_id,
            title=title,
            body=body,
            data=data or {},
            channels=channels or ["push", "email"],
            created_at=datetime.utcnow(),
        )
        try:
            self.deliver(notification)
        except Exception as e:
            logger.warning(f"Failed to dispatch {notification_type} notification to {recipient_id}: "
                           f"{type(e).__name__}: {str(e)}")
            return None
        return notification


class StoredNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the database outbox."""

    def __init__(self, db: Session):
        self.repository = NotificationRepository(db)

    def deliver(self, notification: Notification) -> None:
        self.repository.create(notification)


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """Collects notifications in a list (used in tests and dry runs)."""

    def __init__(self):
        self.sent: List[Notification] = []

    def deliver(self, notification: Notification) -> None:
        self.sent.append(notification)
