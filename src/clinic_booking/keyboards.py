from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup

from clinic_booking.dto import BookingDTO, ServiceDescriptor
from clinic_booking.models import BookingStatus
from clinic_booking.utils.roles import format_contact, status_label

MENU_BOOK = "📅 Bron qilish"
MENU_MY_BOOKINGS = "📋 Mening bronlarim"
MENU_AVAILABLE = "🕒 Bo'sh vaqtlar"
MENU_HELP = "❓ Yordam"
MENU_PENDING = "🗂 Kutilayotgan bronlar"
MENU_STATS = "📊 Statistika"


def main_menu_keyboard(is_admin: bool = False):
    rows = [
        [KeyboardButton(text=MENU_BOOK)],
        [KeyboardButton(text=MENU_MY_BOOKINGS), KeyboardButton(text=MENU_AVAILABLE)],
        [KeyboardButton(text=MENU_HELP)],
    ]
    if is_admin:
        rows.append([KeyboardButton(text=MENU_PENDING), KeyboardButton(text=MENU_STATS)])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True)


def phone_request_keyboard():
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text="📱 Telefon raqamini yuborish", request_contact=True)]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def month_keyboard(months: list[tuple[str, str]]):
    """months: (key ``YYYY-MM``, label)."""
    buttons = [
        [InlineKeyboardButton(text=f"📅 {label}", callback_data=f"book:month:{key}")]
        for key, label in months
    ]
    buttons.append([InlineKeyboardButton(text="🏠 Bosh sahifa", callback_data="menu:main")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def day_keyboard(days: list[tuple[str, str]], chunk: int = 4):
    """days: (``YYYY-MM-DD``, label); 4 кнопки в ряд."""
    buttons = []
    for i in range(0, len(days), chunk):
        buttons.append(
            [InlineKeyboardButton(text=label, callback_data=f"book:day:{iso}") for iso, label in days[i:i + chunk]]
        )
    buttons.append([InlineKeyboardButton(text="◀️ Oyni qayta tanlash", callback_data="book:restart")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def time_keyboard(times: list[str], chunk: int = 2):
    buttons = []
    for i in range(0, len(times), chunk):
        buttons.append(
            [InlineKeyboardButton(text=f"⏰ {t}", callback_data=f"book:time:{t}") for t in times[i:i + chunk]]
        )
    buttons.append([InlineKeyboardButton(text="⬅️ Orqaga", callback_data="book:back_to_day")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def service_keyboard(service: ServiceDescriptor):
    price = f"{service.price:,.0f}".replace(",", " ")
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text=f"💈 {service.name} — {price} so'm",
                    callback_data=f"book:service:{service.id}",
                )
            ],
            [InlineKeyboardButton(text="⬅️ Orqaga", callback_data="book:back_to_time")],
        ]
    )


def booking_confirm_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="✅ Tasdiqlash", callback_data="book:confirm")],
            [InlineKeyboardButton(text="❌ Bekor qilish", callback_data="book:abort")],
        ]
    )


def my_bookings_keyboard(bookings: list[BookingDTO]):
    buttons = [
        [
            InlineKeyboardButton(
                text=f"🚫 Bekor qilish: {b.date} {b.time}",
                callback_data=f"mybookings:cancel:{b.id}",
            )
        ]
        for b in bookings
        if b.status.is_active
    ]
    buttons.append([InlineKeyboardButton(text="📅 Yangi bron", callback_data="book:restart")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def admin_booking_keyboard(booking: BookingDTO):
    rows = []
    if booking.status == BookingStatus.PENDING:
        rows.append(
            [
                InlineKeyboardButton(text="✅ Tasdiqlash", callback_data=f"admin:status:{booking.id}:APPROVED"),
                InlineKeyboardButton(text="❌ Rad etish", callback_data=f"admin:status:{booking.id}:REJECTED"),
            ]
        )
    if booking.status == BookingStatus.APPROVED:
        rows.append(
            [
                InlineKeyboardButton(text="🏁 Yakunlash", callback_data=f"admin:status:{booking.id}:COMPLETED"),
                InlineKeyboardButton(text="🚫 Bekor qilish", callback_data=f"admin:status:{booking.id}:CANCELLED"),
            ]
        )
    rows.append([InlineKeyboardButton(text="💬 Izoh", callback_data=f"admin:comment:{booking.id}")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def booking_caption(booking: BookingDTO) -> str:
    client = booking.client
    who = (client.name if client else None) or "—"
    contact = format_contact(client.phone_number, client.tg_username) if client else "—"
    lines = [
        f"🎫 #{booking.id}",
        f"📆 {booking.date} ⏰ {booking.time}",
        f"👤 {who} ({contact})",
        f"📊 {status_label(booking.status)}",
    ]
    if booking.comment:
        lines.append(f"💬 {booking.comment}")
    return "\n".join(lines)
