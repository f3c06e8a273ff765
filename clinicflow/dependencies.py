"""
Composition root for shared collaborators.

Routers build their domain services per request from these providers; tests
swap them out through ``app.dependency_overrides``. Nothing here is a
module-level singleton.
"""

from fastapi import Depends

from .database import SessionLocal
from .services.audit_service import AuditService
from .services.notification_service import NotificationService
from .services.time_service import TimeService
from .shared.side_effects import SideEffects


def get_time_service() -> TimeService:
    return TimeService()


def get_session_factory():
    """Session factory used by side-effect sinks (separate from the request session)"""
    return SessionLocal


def get_audit_service(session_factory=Depends(get_session_factory)) -> AuditService:
    return AuditService(session_factory)


def get_notification_service(
    session_factory=Depends(get_session_factory),
    time_service: TimeService = Depends(get_time_service),
) -> NotificationService:
    return NotificationService(session_factory, time_service)


def get_side_effects(
    audit_service: AuditService = Depends(get_audit_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> SideEffects:
    return SideEffects(audit_service, notification_service)
