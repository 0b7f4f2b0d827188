import calendar
from datetime import date, timedelta
import logging

from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from clinic_booking.config import Settings
from clinic_booking.dto import BookingDTO, UserDTO
from clinic_booking.models import ADMIN_ROLES
from clinic_booking.utils.roles import status_label

logger = logging.getLogger(__name__)

MONTHS_AHEAD = 3

UZ_MONTHS = (
    "Yanvar",
    "Fevral",
    "Mart",
    "Aprel",
    "May",
    "Iyun",
    "Iyul",
    "Avgust",
    "Sentabr",
    "Oktabr",
    "Noyabr",
    "Dekabr",
)


def month_label(year: int, month: int) -> str:
    return f"{UZ_MONTHS[month - 1]} {year}"


def month_options(today: date, count: int = MONTHS_AHEAD) -> list[tuple[str, str]]:
    """Current month plus the next ``count - 1``: (``YYYY-MM``, label)."""
    options = []
    year, month = today.year, today.month
    for _ in range(count):
        options.append((f"{year:04d}-{month:02d}", month_label(year, month)))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return options


def parse_month_key(value: str) -> tuple[int, int] | None:
    try:
        year_s, month_s = value.split("-")
        year, month = int(year_s), int(month_s)
    except ValueError:
        return None
    if not 1 <= month <= 12:
        return None
    return year, month


def day_options(month_key: str, today: date, horizon_days: int) -> list[tuple[str, str]]:
    """Days of the month from today to ``today + horizon_days``; weekends get a pin."""
    parsed = parse_month_key(month_key)
    if parsed is None:
        return []
    year, month = parsed
    last = today + timedelta(days=horizon_days)
    days = []
    for day in range(1, calendar.monthrange(year, month)[1] + 1):
        current = date(year, month, day)
        if current < today:
            continue
        if current > last:
            break
        mark = "📌" if current.weekday() >= 5 else "📆"
        days.append((current.isoformat(), f"{mark} {day}"))
    return days


def is_admin(user: UserDTO | None, tg_id, settings: Settings) -> bool:
    if tg_id is not None and int(tg_id) in settings.admin_tg_ids:
        return True
    return user is not None and user.role in ADMIN_ROLES


def format_booking_line(booking: BookingDTO) -> str:
    return f"📆 {booking.date} ⏰ {booking.time} · {status_label(booking.status)}"


def format_bookings(bookings: list[BookingDTO]) -> str:
    if not bookings:
        return "📋 Sizda hali bronlar yo'q."
    active = [b for b in bookings if b.status.is_active]
    past = [b for b in bookings if not b.status.is_active]
    lines = ["📋 Sizning bronlaringiz:"]
    if active:
        lines.append("")
        lines.append("Faol:")
        lines.extend(format_booking_line(b) for b in active)
    if past:
        lines.append("")
        lines.append("Tarix:")
        lines.extend(format_booking_line(b) for b in past[:10])
    return "\n".join(lines)


def format_slots(date_str: str, slots: list[str]) -> str:
    if not slots:
        return f"📆 {date_str}: bo'sh vaqt yo'q."
    return f"📆 {date_str}: " + ", ".join(slots)


async def booking_draft(state: FSMContext) -> dict:
    data = await state.get_data()
    return data.get("draft") or {}


async def update_draft(state: FSMContext, **values) -> dict:
    draft = {**(await booking_draft(state)), **values}
    await state.update_data(draft=draft)
    return draft


async def edit_or_answer(callback: CallbackQuery, text: str, reply_markup=None) -> None:
    """Edit the callback's message in place; fall back to a new message."""
    try:
        await callback.message.edit_text(text, reply_markup=reply_markup)
    except TelegramBadRequest as exc:
        if "message is not modified" in str(exc):
            return
        logger.warning("handlers: edit failed tg=%s: %s", callback.from_user.id, exc)
        await callback.message.answer(text, reply_markup=reply_markup)


async def registered_user(booking_service, tg_id) -> UserDTO | None:
    """Chat user who finished registration (has a phone), else None."""
    user = await booking_service.users.find_by_tg_id(tg_id)
    if user is None or not user.phone_number:
        return None
    return user
