from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from clinic_booking.models.base import Base, utc_now
from clinic_booking.models.enums import BookingStatus

# Активные записи (PENDING/APPROVED) не могут делить одно время начала у врача.
# Частичный индекс страхует проверку пересечений между процессами.
_ACTIVE_WHERE = text("status IN ('PENDING', 'APPROVED')")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    date = Column(String(10), nullable=False)
    time = Column(String(5), nullable=False)
    status = Column(
        Enum(BookingStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    comment = Column(Text, nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    client = relationship("User", foreign_keys=[client_id], lazy="raise")
    doctor = relationship("User", foreign_keys=[doctor_id], lazy="raise")

    __table_args__ = (
        Index("ix_bookings_doctor_date", "doctor_id", "date"),
        Index(
            "uq_bookings_active_slot",
            "doctor_id",
            "date",
            "time",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, doctor_id={self.doctor_id}, {self.date} {self.time}, {self.status})>"
