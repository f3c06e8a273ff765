"""
Availability resolver.

Bookable slots for a doctor are derived on every query:

    weekly template (day-of-week ranges)
      - blocked date overrides   (whole day disappears)
      + custom-hours overrides   (replace the weekly ranges for those dates)
      - recurring breaks         (slot unavailable)
      - non-cancelled bookings   (slot unavailable)
      - slots already started    (slot unavailable, clinic-local clock)

A weekday without a template yields an empty list, never an error.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import Actor, require_role
from ...config import DEFAULT_SLOT_DURATION_MINUTES
from ...database import store_access, transaction
from ...enums import Role
from ...errors import ConflictError, NotFoundError, ValidationError
from ...services.time_service import TimeService
from ...shared.retry import retry_on_dependency_error
from ...shared.validators import format_time, parse_time
from .repository import AvailabilityRepository, AvailabilityTemplate, BookedSlot
from .schemas import (
    AvailabilitySlot,
    DaySlotsResponse,
    OverrideRequest,
    SlotCheckResponse,
    WeeklyTemplateRequest,
)

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 62

REASON_NO_TEMPLATE = "doctor does not work on this day"
REASON_BLOCKED = "doctor is unavailable on this date"
REASON_OUTSIDE_HOURS = "time is outside working hours"
REASON_OFF_GRID = "time does not match a bookable slot"
REASON_PAST = "time slot is in the past"
REASON_BREAK = "time conflicts with break period"
REASON_BOOKED = "time slot is already booked"


@dataclass(frozen=True)
class SlotVerdict:
    is_available: bool
    reason: Optional[str] = None


def _overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def _slot_settings(template: AvailabilityTemplate) -> tuple[int, int]:
    """(duration, step) in minutes"""
    config = template.slot_configuration
    duration = (config.default_duration if config else None) or DEFAULT_SLOT_DURATION_MINUTES
    interval = (config.slot_interval if config else None) or duration
    buffer_time = (config.buffer_time if config else 0) or 0
    return duration, interval + buffer_time


def is_blocked(template: AvailabilityTemplate, day: date) -> bool:
    return any(o.is_blocked and o.start_date <= day <= o.end_date for o in template.overrides)


def working_ranges(template: AvailabilityTemplate, day: date) -> list[tuple[str, str]]:
    """
    (start, end) HH:MM ranges worked on one date.

    A non-blocking override with its own hours replaces the weekly ranges for
    the dates it covers, but only on weekdays the doctor works at all.
    """
    weekday = day.weekday()
    ranges = [
        (wd.start_time, wd.end_time)
        for wd in template.working_days
        if wd.day_of_week == weekday and wd.is_available
    ]
    if not ranges or is_blocked(template, day):
        return []
    custom = next(
        (
            o
            for o in template.overrides
            if not o.is_blocked
            and o.start_time
            and o.end_time
            and o.start_date <= day <= o.end_date
        ),
        None,
    )
    if custom:
        return [(custom.start_time, custom.end_time)]
    return ranges


def generate_slots(
    template: AvailabilityTemplate,
    day: date,
    booked: list[BookedSlot],
    now_local: datetime,
) -> list[AvailabilitySlot]:
    """Fixed-width candidate slots for one day, marked available/unavailable"""
    ranges = working_ranges(template, day)
    if not ranges:
        return []

    weekday = day.weekday()

    duration, step = _slot_settings(template)
    day_breaks = [
        (datetime.combine(day, parse_time(b.start_time)), datetime.combine(day, parse_time(b.end_time)))
        for b in template.breaks
        if b.day_of_week == weekday
    ]
    day_bookings = [
        (
            datetime.combine(day, parse_time(b.time)),
            datetime.combine(day, parse_time(b.time)) + timedelta(minutes=b.duration),
        )
        for b in booked
        if b.date == day
    ]

    slots: dict[str, AvailabilitySlot] = {}
    for range_start, range_stop in ranges:
        cursor = datetime.combine(day, parse_time(range_start))
        range_end = datetime.combine(day, parse_time(range_stop))

        while cursor + timedelta(minutes=duration) <= range_end:
            slot_end = cursor + timedelta(minutes=duration)
            start_key = format_time(cursor.time())

            in_past = cursor < now_local
            on_break = any(_overlaps(cursor, slot_end, bs, be) for bs, be in day_breaks)
            booked_already = any(_overlaps(cursor, slot_end, bs, be) for bs, be in day_bookings)

            if start_key not in slots:
                slots[start_key] = AvailabilitySlot(
                    doctor_id=template.doctor_id,
                    date=day,
                    start_time=start_key,
                    end_time=format_time(slot_end.time()),
                    duration=duration,
                    is_available=not (in_past or on_break or booked_already),
                )
            cursor += timedelta(minutes=step)

    return [slots[key] for key in sorted(slots)]


def diagnose_slot(
    template: AvailabilityTemplate,
    day: date,
    at: str,
    booked: list[BookedSlot],
    now_local: datetime,
) -> SlotVerdict:
    """Explain whether a specific start time is bookable, naming the violated rule"""
    weekday = day.weekday()
    duration, _ = _slot_settings(template)
    start = datetime.combine(day, parse_time(at))
    end = start + timedelta(minutes=duration)
    if start < now_local:
        return SlotVerdict(False, REASON_PAST)
    if not any(wd.day_of_week == weekday and wd.is_available for wd in template.working_days):
        return SlotVerdict(False, REASON_NO_TEMPLATE)
    if is_blocked(template, day):
        return SlotVerdict(False, REASON_BLOCKED)

    slots = generate_slots(template, day, booked, now_local)
    match = next((s for s in slots if s.start_time == format_time(start.time())), None)
    if match is None:
        inside = any(
            datetime.combine(day, parse_time(range_start)) <= start
            and end <= datetime.combine(day, parse_time(range_stop))
            for range_start, range_stop in working_ranges(template, day)
        )
        return SlotVerdict(False, REASON_OFF_GRID if inside else REASON_OUTSIDE_HOURS)
    if match.is_available:
        return SlotVerdict(True)

    for b in template.breaks:
        if b.day_of_week == weekday and _overlaps(
            start,
            end,
            datetime.combine(day, parse_time(b.start_time)),
            datetime.combine(day, parse_time(b.end_time)),
        ):
            return SlotVerdict(False, REASON_BREAK)
    return SlotVerdict(False, REASON_BOOKED)


class AvailabilityService:
    """Service layer for availability resolution"""

    def __init__(self, db: Session, time_service: Optional[TimeService] = None):
        self.db = db
        self.time_service = time_service or TimeService()
        self.repo = AvailabilityRepository()

    def _require_doctor(self, doctor_id: int):
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError(f"Doctor {doctor_id} not found", {"doctor_id": doctor_id})
        return doctor

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def resolve_day(self, doctor_id: int, day: date) -> list[AvailabilitySlot]:
        """Slots for one date; empty when the doctor has no template that weekday"""
        with store_access(self.db):
            self._require_doctor(doctor_id)
            template = self.repo.template_for_doctor(self.db, doctor_id, day, day)
            booked = self.repo.booked_slots_for_doctor(self.db, doctor_id, day, day)
        return generate_slots(template, day, booked, self.time_service.local_now())

    @retry_on_dependency_error()
    def resolve_range(self, doctor_id: int, start: date, end: date) -> list[DaySlotsResponse]:
        """Slots for every date in [start, end], fetched in one pass"""
        self.validate_range(start, end)
        with store_access(self.db):
            self._require_doctor(doctor_id)
            template = self.repo.template_for_doctor(self.db, doctor_id, start, end)
            booked = self.repo.booked_slots_for_doctor(self.db, doctor_id, start, end)
        now_local = self.time_service.local_now()

        days = []
        current = start
        while current <= end:
            slots = generate_slots(template, current, booked, now_local)
            days.append(
                DaySlotsResponse(
                    doctor_id=doctor_id,
                    date=current,
                    slots=slots,
                    available_count=sum(1 for s in slots if s.is_available),
                )
            )
            current += timedelta(days=1)
        return days

    def available_dates(self, doctor_id: int, start: date, end: date) -> list[date]:
        """Dates in [start, end] with at least one available slot"""
        return [day.date for day in self.resolve_range(doctor_id, start, end) if day.available_count]

    @retry_on_dependency_error()
    def check_slot(
        self,
        doctor_id: int,
        day: date,
        at: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotCheckResponse:
        """Availability verdict for a single start time"""
        with store_access(self.db):
            self._require_doctor(doctor_id)
            verdict = self._verdict(doctor_id, day, at, exclude_appointment_id)
        return SlotCheckResponse(
            doctor_id=doctor_id,
            date=day,
            time=at,
            is_available=verdict.is_available,
            reason=verdict.reason,
        )

    def ensure_slot_available(
        self,
        doctor_id: int,
        day: date,
        at: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        """
        Re-validate a slot inside the caller's open transaction.

        Locks the doctor row first so concurrent claims for the same doctor
        serialize; returns the slot duration on success.
        """
        doctor = self.repo.lock_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError(f"Doctor {doctor_id} not found", {"doctor_id": doctor_id})
        if not doctor.is_active:
            raise ConflictError("doctor is not accepting appointments", {"doctor_id": doctor_id})

        verdict = self._verdict(doctor_id, day, at, exclude_appointment_id)
        if not verdict.is_available:
            logger.warning(f"⚠️ Slot {day} {at} for doctor {doctor_id} rejected: {verdict.reason}")
            raise ConflictError(
                verdict.reason,
                {"doctor_id": doctor_id, "date": day.isoformat(), "time": at},
            )
        template = self.repo.template_for_doctor(self.db, doctor_id, day, day)
        duration, _ = _slot_settings(template)
        return duration

    def _verdict(
        self, doctor_id: int, day: date, at: str, exclude_appointment_id: Optional[int]
    ) -> SlotVerdict:
        template = self.repo.template_for_doctor(self.db, doctor_id, day, day)
        booked = self.repo.booked_slots_for_doctor(
            self.db, doctor_id, day, day, exclude_appointment_id=exclude_appointment_id
        )
        return diagnose_slot(template, day, at, booked, self.time_service.local_now())

    @staticmethod
    def validate_range(start: date, end: date) -> None:
        if start > end:
            raise ValidationError("start date cannot be after end date")
        if (end - start).days + 1 > MAX_RANGE_DAYS:
            raise ValidationError(f"date range cannot exceed {MAX_RANGE_DAYS} days")

    # ------------------------------------------------------------------
    # Template management
    # ------------------------------------------------------------------

    def set_weekly_template(self, doctor_id: int, data: WeeklyTemplateRequest, actor: Actor) -> None:
        """Replace a doctor's weekly template (the doctor themself or admin)"""
        self._authorize_template_change(doctor_id, actor)
        with transaction(self.db):
            self._require_doctor(doctor_id)
            self.repo.replace_template(
                self.db,
                doctor_id,
                working_days=[wd.model_dump() for wd in data.working_days],
                breaks=[b.model_dump(exclude={"is_available"}) for b in data.breaks],
                slot_configuration=(
                    data.slot_configuration.model_dump() if data.slot_configuration else None
                ),
            )
        logger.info(
            f"✅ Weekly template replaced for doctor {doctor_id} by {actor.label}: "
            f"{len(data.working_days)} ranges, {len(data.breaks)} breaks"
        )

    def add_override(self, doctor_id: int, data: OverrideRequest, actor: Actor) -> int:
        self._authorize_template_change(doctor_id, actor)
        with transaction(self.db):
            self._require_doctor(doctor_id)
            override = self.repo.add_override(
                self.db,
                doctor_id,
                start_date=data.start_date,
                end_date=data.end_date,
                is_blocked=data.is_blocked,
                start_time=data.start_time,
                end_time=data.end_time,
                reason=data.reason,
            )
        logger.info(
            f"✅ Override {override.id} for doctor {doctor_id}: "
            f"{data.start_date} → {data.end_date} (blocked={data.is_blocked}, hours={data.start_time}-{data.end_time})"
        )
        return override.id

    @staticmethod
    def _authorize_template_change(doctor_id: int, actor: Actor) -> None:
        if actor.role == Role.DOCTOR and actor.id == doctor_id:
            return
        require_role(actor, {Role.ADMIN}, "change another doctor's availability")
