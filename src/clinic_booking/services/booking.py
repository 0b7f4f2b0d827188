import asyncio
from collections.abc import Iterable
import logging
from typing import Optional
import weakref

from clinic_booking.dto import BatchResult, BookingDTO, BookingRequest, StatisticsReport, UserDTO
from clinic_booking.models import BookingStatus, UserRole
from clinic_booking.services.availability import AvailabilityChecker, parse_candidate_time
from clinic_booking.services.errors import (
    BookingError,
    InvalidInput,
    NoProviderConfigured,
    NotFound,
    SlotUnavailable,
    UnavailableReason,
)
from clinic_booking.services.notifications import (
    NotificationDispatcher,
    booking_created_text,
    status_changed_text,
)
from clinic_booking.services.repository import BookingRepository
from clinic_booking.services.statistics import StatisticsAggregator
from clinic_booking.services.users import UserRepository
from clinic_booking.utils.time import SLOT_DURATION_MINUTES, canonical_date, format_minutes, to_minutes

logger = logging.getLogger(__name__)


class BookingService:
    """Entry point of the booking core.

    Check-then-create, and the return of an inactive booking to PENDING or
    APPROVED, run under a per-(doctor, date) lock, so two requests of this
    process can never both pass the overlap check for the same day. The
    partial unique index on active (doctor_id, date, time) covers other
    processes: its violation surfaces as SlotUnavailable from the repository.
    """

    def __init__(
        self,
        *,
        bookings: BookingRepository,
        users: UserRepository,
        availability: AvailabilityChecker,
        notifications: NotificationDispatcher,
        statistics: StatisticsAggregator,
    ):
        self.bookings = bookings
        self.users = users
        self.availability = availability
        self.notifications = notifications
        self.statistics = statistics
        self._slot_locks: "weakref.WeakValueDictionary[tuple[int, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _slot_lock(self, provider_id: int, date: str) -> asyncio.Lock:
        key = (provider_id, date)
        lock = self._slot_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._slot_locks[key] = lock
        return lock

    async def resolve_provider(self, provider_id: Optional[int] = None) -> UserDTO:
        if provider_id is not None:
            provider = await self.users.get(provider_id)
            if provider is not None and provider.role == UserRole.DOCTOR:
                return provider
            if provider is None:
                logger.warning("booking: doctor_id=%s not found, using default doctor", provider_id)
            else:
                logger.warning(
                    "booking: user_id=%s has role %s, not DOCTOR; using default doctor",
                    provider_id,
                    provider.role.value,
                )
        provider = await self.users.find_default_provider()
        if provider is None:
            raise NoProviderConfigured("no doctor configured")
        return provider

    async def _resolve_client(self, request: BookingRequest) -> UserDTO:
        if request.client_id is not None:
            client = await self.users.get(request.client_id)
            if client is None:
                raise NotFound("client", request.client_id)
            changes = {}
            if request.client_name and client.name != request.client_name:
                changes["name"] = request.client_name
            if request.phone_number and client.phone_number != request.phone_number:
                changes["phone_number"] = request.phone_number
            if changes:
                client = await self.users.update(client.id, **changes)
            return client

        client = await self.users.find_by_phone(request.phone_number)
        if client is None:
            return await self.users.create_client(phone_number=request.phone_number, name=request.client_name)
        if request.client_name and client.name != request.client_name:
            client = await self.users.update(client.id, name=request.client_name)
        return client

    async def create_booking(self, request: BookingRequest) -> BookingDTO:
        if not request.phone_number and request.client_id is None:
            raise InvalidInput("phone number is required")
        # ключ слота в каноническом виде: "2026-10-21", "09:00"
        date = canonical_date(request.date)
        time = format_minutes(parse_candidate_time(request.time))
        provider = await self.resolve_provider(request.doctor_id)

        async with self._slot_lock(provider.id, date):
            reason = await self.availability.unavailable_reason(provider.id, date, time, SLOT_DURATION_MINUTES)
            if reason is not None:
                logger.info(
                    "booking: rejected doctor_id=%s date=%s time=%s reason=%s",
                    provider.id,
                    date,
                    time,
                    reason.value,
                )
                raise SlotUnavailable(reason)

            client = await self._resolve_client(request)
            booking = await self.bookings.create(
                client_id=client.id,
                doctor_id=provider.id,
                date=date,
                time=time,
                status=BookingStatus.PENDING,
            )

        logger.info(
            "booking: created id=%s doctor_id=%s client_id=%s %s %s",
            booking.id,
            provider.id,
            client.id,
            booking.date,
            booking.time,
        )
        if client.tg_id:
            booking_id = booking.id
            self.notifications.dispatch(
                client.tg_id,
                booking_created_text(booking),
                on_delivered=lambda: self.bookings.mark_notification_sent(booking_id),
            )
        return booking

    async def create_many(self, requests: Iterable[BookingRequest]) -> list[BatchResult]:
        results = []
        for request in requests:
            try:
                booking = await self.create_booking(request)
                results.append(BatchResult(request=request, booking=booking))
            except BookingError as exc:
                results.append(BatchResult(request=request, error=exc.message, error_code=exc.code))
        return results

    async def _reactivate(self, existing: BookingDTO, status: BookingStatus) -> BookingDTO:
        """Put an inactive booking back into the active set if its interval is still free."""
        async with self._slot_lock(existing.doctor_id, existing.date):
            active = await self.bookings.find_active_by_provider_and_date(existing.doctor_id, existing.date)
            others = [b for b in active if b.id != existing.id]
            if self.availability.collides(to_minutes(existing.time), SLOT_DURATION_MINUTES, others):
                logger.info(
                    "booking: reactivation refused id=%s doctor_id=%s %s %s",
                    existing.id,
                    existing.doctor_id,
                    existing.date,
                    existing.time,
                )
                raise SlotUnavailable(UnavailableReason.TAKEN)
            return await self.bookings.update_status(existing.id, status)

    async def update_booking_status(self, booking_id: int, status: BookingStatus) -> BookingDTO:
        if not isinstance(status, BookingStatus):
            raise InvalidInput(f"unknown booking status {status!r}")
        existing = await self.bookings.get(booking_id)
        if existing is None:
            raise NotFound("booking", booking_id)
        if status.is_active and not existing.status.is_active:
            booking = await self._reactivate(existing, status)
        else:
            booking = await self.bookings.update_status(booking_id, status)
        logger.info("booking: status id=%s %s -> %s", booking_id, existing.status.value, status.value)
        if existing.status != status and booking.client and booking.client.tg_id:
            self.notifications.dispatch(booking.client.tg_id, status_changed_text(booking, existing.status))
        return booking

    async def cancel_booking(self, booking_id: int, *, client_id: int) -> BookingDTO:
        """Client-side cancel: only the owner's active bookings."""
        booking = await self.bookings.get(booking_id)
        if booking is None or booking.client_id != client_id:
            raise NotFound("booking", booking_id)
        if not booking.status.is_active:
            raise InvalidInput(f"booking {booking_id} is already {booking.status.value}")
        return await self.update_booking_status(booking_id, BookingStatus.CANCELLED)

    async def check_availability(
        self, provider_id: int, date: str, time: str, duration: int = SLOT_DURATION_MINUTES
    ) -> bool:
        return await self.availability.is_available(provider_id, date, time, duration)

    async def list_available_slots(self, provider_id: Optional[int], date: str) -> list[str]:
        provider = await self.resolve_provider(provider_id)
        return await self.availability.available_slots(provider.id, date)

    async def get_statistics(self, start_date: str, end_date: str) -> StatisticsReport:
        return await self.statistics.get_statistics(start_date, end_date)

    async def get_booking(self, booking_id: int) -> BookingDTO:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound("booking", booking_id)
        return booking

    async def set_comment(self, booking_id: int, comment: Optional[str]) -> BookingDTO:
        comment = (comment or "").strip() or None
        return await self.bookings.set_comment(booking_id, comment)

    async def delete_booking(self, booking_id: int) -> None:
        await self.bookings.delete(booking_id)

    async def list_all(self) -> list[BookingDTO]:
        return await self.bookings.find_all()

    async def list_by_provider(self, provider_id: int) -> list[BookingDTO]:
        return await self.bookings.find_by_provider(provider_id)

    async def list_by_client(self, client_id: int) -> list[BookingDTO]:
        return await self.bookings.find_by_client(client_id)

    async def list_pending(self) -> list[BookingDTO]:
        return await self.bookings.find_pending()

    async def list_commented(self) -> list[BookingDTO]:
        return await self.bookings.find_commented()


def build_booking_service(
    session_factory,
    *,
    notifier,
    timezone: str = "Asia/Tashkent",
    unit_price: float = 50000,
    now=None,
) -> BookingService:
    bookings = BookingRepository(session_factory)
    users = UserRepository(session_factory)
    return BookingService(
        bookings=bookings,
        users=users,
        availability=AvailabilityChecker(bookings, users, tz_name=timezone, now=now),
        notifications=NotificationDispatcher(notifier),
        statistics=StatisticsAggregator(bookings, unit_price),
    )
