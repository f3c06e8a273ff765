from .audit_service import AuditEvent, AuditService
from .notification_service import NotificationEvent, NotificationService
from .time_service import FixedTimeService, TimeService

__all__ = [
    "AuditEvent",
    "AuditService",
    "FixedTimeService",
    "NotificationEvent",
    "NotificationService",
    "TimeService",
]
