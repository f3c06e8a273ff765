"""
Typed failures for the engagement lifecycle.

Every business rule violation is raised as one of these classes and mapped to a
stable caller-facing code at the HTTP boundary (see ``main.py``). Callers must
branch on the class, never on the message text.
"""

from typing import Any, Optional


class ClinicError(Exception):
    """Base class for all domain failures"""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ClinicError):
    """Malformed or missing input"""

    code = "validation_error"
    status_code = 422


class AuthorizationError(ClinicError):
    """Actor lacks the capability for the requested transition"""

    code = "forbidden"
    status_code = 403


class NotFoundError(ClinicError):
    """An id did not resolve"""

    code = "not_found"
    status_code = 404


class ConflictError(ClinicError):
    """A state-machine guard failed, a slot was taken, a race was lost or a bill is settled"""

    code = "conflict"
    status_code = 409


class DependencyError(ClinicError):
    """The store or a collaborating service is unavailable; safe to retry"""

    code = "dependency_unavailable"
    status_code = 503


class ConcurrentModificationError(ConflictError):
    """Optimistic version check failed on commit"""
