import enum


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    CLIENT = "CLIENT"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @property
    def is_active(self) -> bool:
        """Active bookings occupy their slot."""
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.APPROVED)
ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.DOCTOR)
