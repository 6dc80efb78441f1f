"""Repositories for BusinessEvent and Notification database operations."""

import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from opsflow.models.event import BusinessEvent
from opsflow.models.notification import Notification
from opsflow.database.models import BusinessEventDB, NotificationDB, enum_to_value

logger = logging.getLogger(__name__)


class EventRepository:
    """Repository for BusinessEvent database operations.

    Events are immutable apart from their processing state, so an update
    only ever touches the processing columns.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> Optional[BusinessEvent]:
        """Get event by ID."""
        event_db = self.db.query(BusinessEventDB).filter(BusinessEventDB.id == event_id).first()
        return event_db.to_pydantic() if event_db else None

    def create_or_update(self, event: BusinessEvent) -> BusinessEvent:
        """Create an event, or update the processing state of an existing one."""
        event_db = self.db.query(BusinessEventDB).filter(BusinessEventDB.id == event.id).first()

        try:
            if event_db:
                processing = event.processing
                event_db.processing_status = enum_to_value(processing.status)
                event_db.tasks_generated = list(processing.tasks_generated)
                event_db.retry_count = processing.retry_count
                event_db.processed_at = processing.processed_at
                event_db.error_message = processing.error_message
                action = "Updated"
            else:
                event_db = BusinessEventDB.from_pydantic(event)
                self.db.add(event_db)
                action = "Created"
            self.db.commit()
            self.db.refresh(event_db)
            logger.debug(f"{action} event {event.id} ({event.event_type}): status={event_db.processing_status}")
            return event_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save event {event.id}: {type(e).__name__}: {str(e)}")
            raise

    def list_by_status(self, status: str, limit: int = 100) -> List[BusinessEvent]:
        """Get events in a processing status, oldest first."""
        events_db = self.db.query(BusinessEventDB).filter(
            BusinessEventDB.processing_status == status,
        ).order_by(BusinessEventDB.created_at).limit(limit).all()
        return [e.to_pydantic() for e in events_db]


class NotificationRepository:
    """Repository for Notification database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, notification: Notification) -> Notification:
        """Create a notification."""
        try:
            notification_db = NotificationDB.from_pydantic(notification)
            self.db.add(notification_db)
            self.db.commit()
            self.db.refresh(notification_db)
            logger.debug(f"Created notification {notification.id} for {notification.recipient_id}")
            return notification_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create notification {notification.id}: {type(e).__name__}: {str(e)}")
            raise

    def list_for_recipient(self, recipient_id: str, unread_only: bool = False) -> List[Notification]:
        """Get notifications for a recipient, newest first."""
        query = self.db.query(NotificationDB).filter(NotificationDB.recipient_id == recipient_id)
        if unread_only:
            query = query.filter(NotificationDB.read.is_(False))
        return [n.to_pydantic() for n in query.order_by(desc(NotificationDB.created_at)).all()]
