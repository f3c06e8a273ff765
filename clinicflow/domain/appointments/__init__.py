"""Appointment domain - booking, visit lifecycle and rescheduling"""

from .reschedule import RescheduleCoordinator
from .router import router
from .service import AppointmentService

__all__ = ["AppointmentService", "RescheduleCoordinator", "router"]
