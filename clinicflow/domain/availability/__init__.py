from .router import router
from .service import AvailabilityService

__all__ = ["AvailabilityService", "router"]
