"""Billing domain - consultation completion and payment collection"""

from .router import router
from .service import CompletionService

__all__ = ["CompletionService", "router"]
