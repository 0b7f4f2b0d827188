from clinic_booking.models import BookingStatus, UserRole


def format_username(username: str | None) -> str | None:
    if not username:
        return None
    u = username.strip()
    if not u:
        return None
    return u if u.startswith("@") else f"@{u}"


def format_contact(phone_number: str | None, username: str | None) -> str:
    phone = (phone_number or "").strip()
    if phone:
        return phone
    u = format_username(username)
    return u or "—"


def role_label(role: UserRole | None) -> str:
    return {
        UserRole.SUPER_ADMIN: "bosh administrator",
        UserRole.ADMIN: "administrator",
        UserRole.DOCTOR: "shifokor",
        UserRole.CLIENT: "mijoz",
    }.get(role, "—")


_STATUS_LABELS = {
    BookingStatus.PENDING: "⏳ Kutilmoqda",
    BookingStatus.APPROVED: "✅ Tasdiqlangan",
    BookingStatus.REJECTED: "❌ Rad etilgan",
    BookingStatus.CANCELLED: "🚫 Bekor qilingan",
    BookingStatus.COMPLETED: "🏁 Yakunlangan",
}


def status_label(status: BookingStatus | None) -> str:
    return _STATUS_LABELS.get(status, "—")
