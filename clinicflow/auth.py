"""
Caller identity and capability checks.

Credentials are issued and verified by the upstream gateway, which forwards the
authenticated identity as X-Actor-Id / X-Actor-Role headers. For a PATIENT the
id is the patient id, for a DOCTOR the doctor id; staff ids are user ids.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Header

from .enums import STAFF_ROLES, Role
from .errors import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def label(self) -> str:
        return f"{self.role.value}:{self.id}"


def get_current_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """FastAPI dependency resolving the caller from gateway headers"""
    if not x_actor_id or not x_actor_role:
        logger.warning("⚠️ Request without actor headers")
        raise AuthorizationError("Not authenticated. Missing actor identity headers.")
    try:
        role = Role(x_actor_role.strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown actor role: {x_actor_role}") from None
    try:
        actor_id = int(x_actor_id)
    except ValueError:
        raise ValidationError("X-Actor-Id must be an integer") from None
    return Actor(id=actor_id, role=role)


def require_role(actor: Actor, roles: Iterable[Role], action: str) -> None:
    allowed = set(roles)
    if actor.role not in allowed:
        logger.warning(f"🚫 {actor.label} may not {action}")
        names = ", ".join(sorted(r.value.lower() for r in allowed))
        raise AuthorizationError(
            f"only {names} may {action}", {"role": actor.role.value, "action": action}
        )


def require_staff(actor: Actor, action: str) -> None:
    require_role(actor, STAFF_ROLES, action)


def require_patient_or_staff(actor: Actor, patient_id: int, what: str) -> None:
    """Patient acting on their own record, or staff acting on their behalf"""
    if actor.is_staff:
        return
    if actor.role == Role.PATIENT and actor.id == patient_id:
        return
    logger.warning(f"🚫 {actor.label} denied: not their {what}")
    raise AuthorizationError(f"not your {what}", {"actor": actor.label})


def require_assigned_doctor(actor: Actor, doctor_id: int) -> None:
    if actor.role == Role.ADMIN:
        return
    if actor.role == Role.DOCTOR and actor.id == doctor_id:
        return
    logger.warning(f"🚫 {actor.label} denied: not the assigned doctor")
    raise AuthorizationError("not your appointment", {"actor": actor.label})
