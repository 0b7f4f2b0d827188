from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from clinic_booking.models import Booking, BookingStatus, User, UserRole


@dataclass
class UserDTO:
    id: int
    name: Optional[str]
    phone_number: Optional[str]
    tg_id: Optional[str]
    tg_username: Optional[str]
    role: UserRole
    working: bool
    work_start_time: Optional[str]
    work_end_time: Optional[str]


@dataclass
class BookingDTO:
    id: int
    client_id: Optional[int]
    doctor_id: Optional[int]
    date: str
    time: str
    status: BookingStatus
    comment: Optional[str]
    notification_sent: bool
    created_at: Optional[datetime]
    client: Optional[UserDTO] = None
    doctor: Optional[UserDTO] = None

    @property
    def doctor_name(self) -> str:
        return (self.doctor.name if self.doctor else None) or "Shifokor"


@dataclass
class BookingRequest:
    phone_number: str
    date: str
    time: str
    client_name: Optional[str] = None
    doctor_id: Optional[int] = None
    # задаётся, когда вызывающий (бот) уже знает клиента
    client_id: Optional[int] = None


@dataclass
class BatchResult:
    request: BookingRequest
    booking: Optional[BookingDTO] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.booking is not None


@dataclass
class ServiceDescriptor:
    id: int
    name: str
    price: float
    duration: int


@dataclass
class StatisticsBooking:
    id: int
    date: str
    time: str
    status: BookingStatus
    service: ServiceDescriptor


@dataclass
class ProviderStatistics:
    doctor_id: int
    doctor_name: str
    bookings: list[StatisticsBooking] = field(default_factory=list)


@dataclass
class StatisticsReport:
    start_date: str
    end_date: str
    total_revenue: float
    total_bookings: int
    bookings_by_status: dict[str, int]
    doctor_statistics: list[ProviderStatistics]

    def as_dict(self) -> dict:
        return {
            "period": {"start_date": self.start_date, "end_date": self.end_date},
            "summary": {
                "total_revenue": self.total_revenue,
                "total_bookings": self.total_bookings,
                "bookings_by_status": dict(self.bookings_by_status),
            },
            "doctor_statistics": [
                {
                    "doctor": {"id": ps.doctor_id, "name": ps.doctor_name},
                    "bookings": [
                        {
                            "id": b.id,
                            "date": b.date,
                            "time": b.time,
                            "status": b.status.value,
                            "service": vars(b.service),
                            "services": [vars(b.service)],
                        }
                        for b in ps.bookings
                    ],
                }
                for ps in self.doctor_statistics
            ],
        }


def to_user(row: User) -> UserDTO:
    return UserDTO(
        id=row.id,
        name=row.name,
        phone_number=row.phone_number,
        tg_id=row.tg_id,
        tg_username=row.tg_username,
        role=row.role,
        working=bool(row.working),
        work_start_time=row.work_start_time,
        work_end_time=row.work_end_time,
    )


def to_booking(row: Booking) -> BookingDTO:
    client = row.client
    doctor = row.doctor
    return BookingDTO(
        id=row.id,
        client_id=row.client_id,
        doctor_id=row.doctor_id,
        date=row.date,
        time=row.time,
        status=row.status,
        comment=row.comment,
        notification_sent=bool(row.notification_sent),
        created_at=row.created_at,
        client=to_user(client) if client is not None else None,
        doctor=to_user(doctor) if doctor is not None else None,
    )
