from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String

from clinic_booking.models.base import Base, utc_now
from clinic_booking.models.enums import UserRole


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=True)
    # уникальность телефона нужна для сопоставления клиентов (см. create_client)
    phone_number = Column(String, unique=True, index=True, nullable=True)
    tg_id = Column(String, unique=True, index=True, nullable=True)
    tg_username = Column(String, unique=True, nullable=True)
    role = Column(
        Enum(UserRole, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=UserRole.CLIENT,
    )
    working = Column(Boolean, nullable=False, default=False)
    work_start_time = Column(String(5), nullable=True)
    work_end_time = Column(String(5), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    def __repr__(self):
        return f"<User(id={self.id}, role={self.role}, name={self.name!r})>"
