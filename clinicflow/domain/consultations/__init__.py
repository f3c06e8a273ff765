"""Consultation request domain - intake, triage and confirmation"""

from .router import router
from .service import ConsultationRequestService

__all__ = ["router", "ConsultationRequestService"]
