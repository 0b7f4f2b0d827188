import enum


class BookingError(Exception):
    """Base for every error the booking core raises on purpose."""

    code = "booking_error"
    is_client_error = True

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidInput(BookingError):
    code = "invalid_input"


class MalformedTime(BookingError):
    code = "malformed_time"

    def __init__(self, value: str | None, message: str = ""):
        super().__init__(message or f"time {value!r} is not in HH:MM format")
        self.value = value


class UnavailableReason(str, enum.Enum):
    PAST_DATE = "past_date"
    PAST_TIME = "past_time"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"
    TAKEN = "taken"


class SlotUnavailable(BookingError):
    code = "slot_unavailable"

    def __init__(self, reason: UnavailableReason = UnavailableReason.TAKEN, message: str = ""):
        super().__init__(message or f"slot unavailable: {reason.value}")
        self.reason = reason


class NoProviderConfigured(BookingError):
    code = "no_provider"
    is_client_error = False


class NotFound(BookingError):
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


_SLOT_MESSAGES = {
    UnavailableReason.PAST_DATE: "O'tgan sanani tanlash mumkin emas.",
    UnavailableReason.PAST_TIME: "O'tgan vaqtni tanlash mumkin emas.",
    UnavailableReason.OUTSIDE_WORKING_HOURS: "Tanlangan vaqt ish vaqtidan tashqarida.",
    UnavailableReason.TAKEN: "Tanlangan vaqt allaqachon band. Boshqa vaqtni tanlang.",
}


def user_friendly_error(exc: Exception) -> str:
    if isinstance(exc, SlotUnavailable):
        return _SLOT_MESSAGES[exc.reason]
    if isinstance(exc, (InvalidInput, MalformedTime)):
        return "Ma'lumotlarni tekshiring."
    if isinstance(exc, NotFound):
        return "Topilmadi yoki eskirgan."
    if isinstance(exc, NoProviderConfigured):
        return "Shifokor topilmadi. Keyinroq urinib ko'ring."
    return "Xatolik yuz berdi, keyinroq urinib ko'ring."
