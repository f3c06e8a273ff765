"""
Audit sink for lifecycle transitions.

Events are written after the transition has committed, in a session of their
own. A failed audit write is logged loudly and swallowed: losing an audit row
is degraded observability, never a business failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..models import AuditLog

logger = logging.getLogger(__name__)


@dataclass
class AuditEvent:
    actor: str
    entity_type: str  # "Appointment", "ConsultationRequest", "Payment"
    entity_id: int
    action: str
    occurred_at: datetime
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    reason: Optional[str] = None
    details: dict = field(default_factory=dict)


class AuditService:
    """Persists AuditEvents to the audit_logs table"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(self, event: AuditEvent) -> bool:
        db = self.session_factory()
        try:
            db.add(
                AuditLog(
                    actor=event.actor,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    action=event.action,
                    from_status=event.from_status,
                    to_status=event.to_status,
                    reason=event.reason,
                    details=_format_details(event.details),
                    occurred_at=event.occurred_at,
                )
            )
            db.commit()
            logger.debug(
                f"📝 Audit {event.entity_type} {event.entity_id}: "
                f"{event.from_status} → {event.to_status} by {event.actor}"
            )
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"❌ AUDIT WRITE FAILED - event lost: {event!r} ({e})")
            return False
        finally:
            db.close()


def _format_details(details: dict) -> Optional[str]:
    if not details:
        return None
    return "; ".join(f"{key}={value}" for key, value in details.items())
