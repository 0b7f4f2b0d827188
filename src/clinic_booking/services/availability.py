"""Slot availability rules.

A candidate ``[start, start + duration)`` on a provider's date is bookable when,
in this order:

1. the date is not before today (local time);
2. for today, the start minute is strictly after the current minute; there is
   no grace window, so a slot starting this very minute is already past;
3. the interval fits inside the provider's working hours (09:00-18:00 when the
   provider has none stored);
4. it does not overlap any PENDING/APPROVED booking of that provider and date.
"""
from collections.abc import Callable, Iterable
from datetime import date as date_type, datetime
import logging
from typing import Optional

from clinic_booking.dto import BookingDTO
from clinic_booking.services.errors import InvalidInput, MalformedTime, UnavailableReason
from clinic_booking.services.repository import BookingRepository
from clinic_booking.services.users import UserRepository
from clinic_booking.utils.time import (
    DEFAULT_WORK_END,
    DEFAULT_WORK_START,
    SLOT_DURATION_MINUTES,
    format_minutes,
    generate_grid,
    local_now,
    minute_of_day,
    overlaps,
    parse_date,
    to_minutes,
)

logger = logging.getLogger(__name__)


def validate_provider_id(provider_id) -> int:
    if isinstance(provider_id, str):
        if not provider_id.strip():
            raise InvalidInput("provider id is empty")
        raise InvalidInput("provider id must be normalized to int by the caller")
    if provider_id is None or isinstance(provider_id, bool) or not isinstance(provider_id, int):
        raise InvalidInput(f"invalid provider id {provider_id!r}")
    return provider_id


def parse_candidate_time(time: Optional[str]) -> int:
    if not time:
        raise InvalidInput("time is required")
    try:
        return to_minutes(time)
    except MalformedTime as exc:
        raise InvalidInput(f"time {time!r} must be HH:MM") from exc


class AvailabilityChecker:
    def __init__(
        self,
        bookings: BookingRepository,
        users: UserRepository,
        *,
        tz_name: str = "Asia/Tashkent",
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._bookings = bookings
        self._users = users
        self._now = now or (lambda: local_now(tz_name))

    def temporal_reason(self, day: date_type, start_minutes: int) -> Optional[UnavailableReason]:
        """Past-date and past-time checks only; no I/O."""
        now = self._now()
        today = now.date()
        if day < today:
            return UnavailableReason.PAST_DATE
        if day == today and start_minutes <= minute_of_day(now):
            return UnavailableReason.PAST_TIME
        return None

    async def working_hours(self, provider_id: int) -> tuple[int, int]:
        provider = await self._users.get(provider_id)
        start_raw = (provider.work_start_time if provider else None) or DEFAULT_WORK_START
        end_raw = (provider.work_end_time if provider else None) or DEFAULT_WORK_END
        try:
            return to_minutes(start_raw), to_minutes(end_raw)
        except MalformedTime:
            logger.error(
                "availability: malformed working hours provider_id=%s start=%r end=%r",
                provider_id,
                start_raw,
                end_raw,
            )
            raise

    @staticmethod
    def collides(start_minutes: int, duration: int, bookings: Iterable[BookingDTO]) -> bool:
        for booking in bookings:
            try:
                booked = to_minutes(booking.time)
            except MalformedTime:
                logger.warning("availability: skip malformed booking time id=%s time=%r", booking.id, booking.time)
                continue
            if overlaps(start_minutes, duration, booked, SLOT_DURATION_MINUTES):
                return True
        return False

    async def unavailable_reason(
        self, provider_id, date: Optional[str], time: Optional[str], duration: int = SLOT_DURATION_MINUTES
    ) -> Optional[UnavailableReason]:
        provider_id = validate_provider_id(provider_id)
        if not date:
            raise InvalidInput("date is required")
        start = parse_candidate_time(time)
        day = parse_date(date)
        if duration <= 0:
            raise InvalidInput("duration must be positive")

        reason = self.temporal_reason(day, start)
        if reason is not None:
            return reason

        work_start, work_end = await self.working_hours(provider_id)
        if start < work_start or start + duration > work_end:
            return UnavailableReason.OUTSIDE_WORKING_HOURS

        active = await self._bookings.find_active_by_provider_and_date(provider_id, day.isoformat())
        if self.collides(start, duration, active):
            return UnavailableReason.TAKEN
        return None

    async def is_available(
        self, provider_id, date: Optional[str], time: Optional[str], duration: int = SLOT_DURATION_MINUTES
    ) -> bool:
        return await self.unavailable_reason(provider_id, date, time, duration) is None

    async def available_slots(self, provider_id, date: Optional[str]) -> list[str]:
        """Free grid slots of a day, using a single bookings query."""
        provider_id = validate_provider_id(provider_id)
        day = parse_date(date)
        work_start, work_end = await self.working_hours(provider_id)
        active = await self._bookings.find_active_by_provider_and_date(provider_id, day.isoformat())
        free = []
        for slot in generate_grid(format_minutes(work_start), format_minutes(work_end), SLOT_DURATION_MINUTES):
            start = to_minutes(slot)
            if start + SLOT_DURATION_MINUTES > work_end:
                continue
            if self.temporal_reason(day, start) is not None:
                continue
            if self.collides(start, SLOT_DURATION_MINUTES, active):
                continue
            free.append(slot)
        return free
