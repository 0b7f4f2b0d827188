from clinic_booking.models.base import Base
from clinic_booking.models.booking import Booking
from clinic_booking.models.enums import ACTIVE_STATUSES, ADMIN_ROLES, BookingStatus, UserRole
from clinic_booking.models.user import User

__all__ = ["ACTIVE_STATUSES", "ADMIN_ROLES", "Base", "Booking", "BookingStatus", "User", "UserRole"]
