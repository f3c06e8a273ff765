"""
Post-commit side effects shared by the lifecycle services.

Audit and notification calls happen only after the primary transition has
committed. Neither may escalate: failures are logged and dropped.
"""

import logging
from typing import Optional

from ..services.audit_service import AuditEvent, AuditService
from ..services.notification_service import NotificationEvent, NotificationService

logger = logging.getLogger(__name__)


class SideEffects:
    def __init__(self, audit_service: AuditService, notification_service: NotificationService):
        self.audit_service = audit_service
        self.notification_service = notification_service

    def audit(self, event: AuditEvent) -> None:
        try:
            recorded = self.audit_service.record(event)
        except Exception as e:
            logger.error(
                f"❌ AUDIT WRITE FAILED for {event.entity_type} {event.entity_id} "
                f"({event.from_status} → {event.to_status} by {event.actor}): {e}"
            )
            return
        if recorded is False:
            logger.error(
                f"❌ AUDIT WRITE FAILED for {event.entity_type} {event.entity_id} "
                f"({event.from_status} → {event.to_status} by {event.actor})"
            )

    def notify(self, event: Optional[NotificationEvent]) -> None:
        if event is None:
            return
        try:
            self.notification_service.notify(event)
        except Exception as e:
            logger.error(f"❌ Failed to dispatch {event.event_type} notification: {e}")
