"""Shared validation utilities"""

import re
from datetime import datetime, time
from typing import Any, Optional, TypeVar

import pydantic

from ..errors import ValidationError

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MIN_REASON_LENGTH = 10


def validate_time_string(value: str) -> str:
    """
    Validate a clinic wall-clock time in 24h HH:MM form.

    Raises:
        ValueError: If the value is not HH:MM
    """
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValueError("time must be in HH:MM 24-hour format")
    return value.strip()


def parse_time(value: str) -> time:
    return datetime.strptime(validate_time_string(value), "%H:%M").time()


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def require_reason(reason: Optional[str], what: str, min_length: int = 1) -> str:
    """Non-empty (and optionally minimum length) free-text reason"""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError(f"a reason is required to {what}")
    if len(cleaned) < min_length:
        raise ValidationError(
            f"reason must be at least {min_length} characters to {what}",
            {"min_length": min_length},
        )
    return cleaned


def parse_request(model: type[ModelT], payload: Any) -> ModelT:
    """
    Validate a raw payload against a request schema.

    This is the single validation boundary for transport-agnostic callers;
    pydantic failures surface as the domain ValidationError.
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        first = errors[0]["message"] if errors else "invalid request"
        raise ValidationError(first, {"errors": errors}) from None
