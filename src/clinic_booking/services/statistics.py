import logging

from clinic_booking.dto import (
    ProviderStatistics,
    ServiceDescriptor,
    StatisticsBooking,
    StatisticsReport,
)
from clinic_booking.models import BookingStatus
from clinic_booking.services.repository import BookingRepository
from clinic_booking.utils.time import SLOT_DURATION_MINUTES, canonical_date

logger = logging.getLogger(__name__)

FLAT_SERVICE_NAME = "30 daqiqa xizmat"


class StatisticsAggregator:
    """Read-only rollup over bookings; the service is flat-rate, so revenue is
    the number of completed bookings times one unit price."""

    def __init__(self, bookings: BookingRepository, unit_price: float):
        self._bookings = bookings
        self._unit_price = unit_price

    def service_descriptor(self) -> ServiceDescriptor:
        return ServiceDescriptor(
            id=0,
            name=FLAT_SERVICE_NAME,
            price=self._unit_price,
            duration=SLOT_DURATION_MINUTES,
        )

    async def get_statistics(self, start_date: str, end_date: str) -> StatisticsReport:
        start_date = canonical_date(start_date)
        end_date = canonical_date(end_date)
        bookings = await self._bookings.find_by_date_range(start_date, end_date)

        by_status = {status.value.lower(): 0 for status in BookingStatus}
        for booking in bookings:
            by_status[booking.status.value.lower()] += 1

        service = self.service_descriptor()
        per_provider: dict[int, ProviderStatistics] = {}
        for booking in bookings:
            if booking.doctor_id is None or booking.doctor is None:
                continue
            stat = per_provider.get(booking.doctor_id)
            if stat is None:
                stat = ProviderStatistics(
                    doctor_id=booking.doctor_id,
                    doctor_name=booking.doctor.name or "N/A",
                )
                per_provider[booking.doctor_id] = stat
            stat.bookings.append(
                StatisticsBooking(
                    id=booking.id,
                    date=booking.date,
                    time=booking.time,
                    status=booking.status,
                    service=service,
                )
            )

        completed = by_status[BookingStatus.COMPLETED.value.lower()]
        report = StatisticsReport(
            start_date=start_date,
            end_date=end_date,
            total_revenue=completed * self._unit_price,
            total_bookings=len(bookings),
            bookings_by_status=by_status,
            doctor_statistics=list(per_provider.values()),
        )
        logger.info(
            "statistics: %s..%s total=%s completed=%s revenue=%s",
            start_date,
            end_date,
            report.total_bookings,
            completed,
            report.total_revenue,
        )
        return report
