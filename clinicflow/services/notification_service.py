"""
Notification dispatch for lifecycle events.

Notifications are best effort: they are sent after the primary transition has
committed, and a failure here is logged but never rolls back or blocks the
transition. Delivery to email/SMS is handled outside this service; what is
stored here is the in-app notification feed.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..enums import Role
from ..models import Notification
from .time_service import TimeService

logger = logging.getLogger(__name__)


@dataclass
class NotificationEvent:
    event_type: str
    recipient_role: Role
    recipient_id: Optional[int]  # None -> broadcast to the role
    title: str
    message: str
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None


class NotificationService:
    """Writes NotificationEvents to the in-app notifications table"""

    def __init__(self, session_factory: Callable[[], Session], time_service: TimeService):
        self.session_factory = session_factory
        self.time_service = time_service

    def notify(self, event: NotificationEvent) -> bool:
        target = (
            f"{event.recipient_role.value}:{event.recipient_id}"
            if event.recipient_id is not None
            else f"all {event.recipient_role.value}"
        )
        db = self.session_factory()
        try:
            logger.info(f"📣 Sending {event.event_type} notification to {target}")
            db.add(
                Notification(
                    recipient_role=event.recipient_role.value,
                    recipient_id=event.recipient_id,
                    event_type=event.event_type,
                    title=event.title,
                    message=event.message,
                    resource_type=event.resource_type,
                    resource_id=event.resource_id,
                    created_at=self.time_service.local_now(),
                )
            )
            db.commit()
            logger.info(f"✅ {event.event_type} notification stored for {target}")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to send {event.event_type} notification to {target}: {e}")
            return False
        finally:
            db.close()
