import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from clinic_booking.db import get_async_session
from clinic_booking.dto import BookingDTO, to_booking
from clinic_booking.models import ACTIVE_STATUSES, Booking, BookingStatus
from clinic_booking.services.errors import NotFound, SlotUnavailable, UnavailableReason

logger = logging.getLogger(__name__)

_ACTIVE_SLOT_MARKERS = (
    "uq_bookings_active_slot",
    # SQLite не сообщает имя индекса, только столбцы
    "bookings.doctor_id, bookings.date, bookings.time",
)


def _with_people(stmt):
    return stmt.options(selectinload(Booking.client), selectinload(Booking.doctor))


def is_active_slot_conflict(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return any(marker in text for marker in _ACTIVE_SLOT_MARKERS)


class BookingRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _list(self, stmt) -> list[BookingDTO]:
        async with get_async_session(self._session_factory) as session:
            rows = (await session.execute(_with_people(stmt))).scalars().all()
            return [to_booking(row) for row in rows]

    async def find_active_by_provider_and_date(self, provider_id: int, date: str) -> list[BookingDTO]:
        return await self._list(
            select(Booking)
            .where(
                Booking.doctor_id == provider_id,
                Booking.date == date,
                Booking.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Booking.time.asc())
        )

    async def find_all(self) -> list[BookingDTO]:
        return await self._list(select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()))

    async def find_by_provider(self, provider_id: int) -> list[BookingDTO]:
        return await self._list(
            select(Booking)
            .where(Booking.doctor_id == provider_id)
            .order_by(Booking.date.asc(), Booking.time.asc())
        )

    async def find_by_client(self, client_id: int) -> list[BookingDTO]:
        return await self._list(
            select(Booking)
            .where(Booking.client_id == client_id)
            .order_by(Booking.date.desc(), Booking.time.desc())
        )

    async def find_pending(self) -> list[BookingDTO]:
        return await self._list(
            select(Booking)
            .where(Booking.status == BookingStatus.PENDING)
            .order_by(Booking.created_at.asc(), Booking.id.asc())
        )

    async def find_by_date_range(self, start_date: str, end_date: str) -> list[BookingDTO]:
        # ISO-даты с ведущими нулями сравниваются лексически
        return await self._list(
            select(Booking)
            .where(Booking.date >= start_date, Booking.date <= end_date)
            .order_by(Booking.date.asc(), Booking.time.asc())
        )

    async def find_commented(self) -> list[BookingDTO]:
        return await self._list(
            select(Booking)
            .where(Booking.comment.is_not(None))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )

    async def get(self, booking_id: int) -> Optional[BookingDTO]:
        async with get_async_session(self._session_factory) as session:
            row = (
                await session.execute(_with_people(select(Booking).where(Booking.id == booking_id)))
            ).scalar_one_or_none()
            return to_booking(row) if row is not None else None

    async def create(
        self,
        *,
        client_id: Optional[int],
        doctor_id: Optional[int],
        date: str,
        time: str,
        status: BookingStatus = BookingStatus.PENDING,
        comment: Optional[str] = None,
    ) -> BookingDTO:
        async with get_async_session(self._session_factory) as session:
            row = Booking(
                client_id=client_id,
                doctor_id=doctor_id,
                date=date,
                time=time,
                status=status,
                comment=comment,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if is_active_slot_conflict(exc):
                    logger.warning(
                        "bookings.create: active slot conflict doctor_id=%s date=%s time=%s",
                        doctor_id,
                        date,
                        time,
                    )
                    raise SlotUnavailable(UnavailableReason.TAKEN) from exc
                raise
            booking_id = row.id
        booking = await self.get(booking_id)
        logger.info(
            "bookings.create: id=%s doctor_id=%s client_id=%s date=%s time=%s",
            booking_id,
            doctor_id,
            client_id,
            date,
            time,
        )
        return booking

    async def _mutate(self, booking_id: int, **values) -> BookingDTO:
        async with get_async_session(self._session_factory) as session:
            row = await session.get(Booking, booking_id)
            if row is None:
                raise NotFound("booking", booking_id)
            for key, value in values.items():
                setattr(row, key, value)
            try:
                await session.commit()
            except IntegrityError as exc:
                # повторная активация отменённой записи на занятое время
                await session.rollback()
                if is_active_slot_conflict(exc):
                    raise SlotUnavailable(UnavailableReason.TAKEN) from exc
                raise
        return await self.get(booking_id)

    async def update_status(self, booking_id: int, status: BookingStatus) -> BookingDTO:
        return await self._mutate(booking_id, status=status)

    async def set_comment(self, booking_id: int, comment: Optional[str]) -> BookingDTO:
        return await self._mutate(booking_id, comment=comment)

    async def mark_notification_sent(self, booking_id: int) -> BookingDTO:
        return await self._mutate(booking_id, notification_sent=True)

    async def delete(self, booking_id: int) -> None:
        async with get_async_session(self._session_factory) as session:
            result = await session.execute(delete(Booking).where(Booking.id == booking_id))
            if result.rowcount == 0:
                await session.rollback()
                raise NotFound("booking", booking_id)
            await session.commit()
        logger.info("bookings.delete: id=%s", booking_id)
