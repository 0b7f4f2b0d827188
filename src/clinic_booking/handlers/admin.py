import calendar
import logging
from typing import Optional

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from sqlalchemy.exc import SQLAlchemyError

from clinic_booking.config import Settings
from clinic_booking.dto import StatisticsReport
from clinic_booking.keyboards import MENU_PENDING, MENU_STATS, admin_booking_keyboard, booking_caption
from clinic_booking.models import BookingStatus
from clinic_booking.services.booking import BookingService
from clinic_booking.services.errors import BookingError, user_friendly_error
from clinic_booking.states import AdminStates
from clinic_booking.utils.corr import new_corr_id
from clinic_booking.utils.roles import status_label
from clinic_booking.utils.time import local_now
from .utils import edit_or_answer, is_admin

router = Router()
logger = logging.getLogger(__name__)

NO_ACCESS = "⛔ Bu buyruq faqat administratorlar uchun."


async def _ensure_admin(booking_service: BookingService, settings: Settings, tg_id) -> bool:
    user = await booking_service.users.find_by_tg_id(tg_id)
    allowed = is_admin(user, tg_id, settings)
    if not allowed:
        logger.warning("admin: access denied tg=%s", tg_id)
    return allowed


def parse_status_callback(raw: str) -> Optional[BookingStatus]:
    """``APPROVED`` from ``admin:status:{id}:APPROVED``; None for anything else."""
    try:
        return BookingStatus(raw)
    except ValueError:
        return None


def format_statistics(report: StatisticsReport) -> str:
    revenue = f"{report.total_revenue:,.0f}".replace(",", " ")
    lines = [
        f"📊 Statistika: {report.start_date} — {report.end_date}",
        "",
        f"Jami bronlar: {report.total_bookings}",
        f"💰 Daromad: {revenue} so'm",
        "",
    ]
    for key, count in report.bookings_by_status.items():
        lines.append(f"{key}: {count}")
    if report.doctor_statistics:
        lines.append("")
        for stat in report.doctor_statistics:
            lines.append(f"👨‍⚕️ {stat.doctor_name}: {len(stat.bookings)} ta bron")
    return "\n".join(lines)


@router.message(Command("pending"))
@router.message(F.text == MENU_PENDING)
async def on_pending(message: Message, booking_service: BookingService, settings: Settings):
    if not await _ensure_admin(booking_service, settings, message.from_user.id):
        await message.answer(NO_ACCESS)
        return
    corr_id = new_corr_id()
    try:
        bookings = await booking_service.list_pending()
    except SQLAlchemyError:
        logger.exception("admin: pending failed tg=%s corr=%s", message.from_user.id, corr_id)
        await message.answer(f"Xatolik yuz berdi. (corr={corr_id})")
        return
    if not bookings:
        await message.answer("✅ Kutilayotgan bronlar yo'q.")
        return
    await message.answer(f"🗂 Kutilayotgan bronlar: {len(bookings)}")
    for booking in bookings:
        await message.answer(booking_caption(booking), reply_markup=admin_booking_keyboard(booking))


@router.callback_query(F.data.startswith("admin:status:"))
async def on_status(callback: CallbackQuery, booking_service: BookingService, settings: Settings):
    if not await _ensure_admin(booking_service, settings, callback.from_user.id):
        await callback.answer(NO_ACCESS, show_alert=True)
        return
    _, _, rest = callback.data.split(":", 2)
    raw_id, _, raw_status = rest.partition(":")
    status = parse_status_callback(raw_status)
    if not raw_id.isdigit() or status is None:
        await callback.answer("Topilmadi yoki eskirgan.", show_alert=True)
        return
    corr_id = new_corr_id()
    try:
        booking = await booking_service.update_booking_status(int(raw_id), status)
    except BookingError as exc:
        await callback.answer(user_friendly_error(exc), show_alert=True)
        return
    except SQLAlchemyError:
        logger.exception("admin: status failed tg=%s booking=%s corr=%s", callback.from_user.id, raw_id, corr_id)
        await callback.answer(f"Xatolik yuz berdi. (corr={corr_id})", show_alert=True)
        return
    logger.info("admin: tg=%s booking=%s status=%s", callback.from_user.id, booking.id, booking.status.value)
    await edit_or_answer(callback, booking_caption(booking), admin_booking_keyboard(booking))
    await callback.answer(status_label(booking.status))


@router.callback_query(F.data.startswith("admin:comment:"))
async def on_comment_start(callback: CallbackQuery, state: FSMContext, booking_service: BookingService, settings: Settings):
    if not await _ensure_admin(booking_service, settings, callback.from_user.id):
        await callback.answer(NO_ACCESS, show_alert=True)
        return
    _, _, raw_id = callback.data.split(":", 2)
    if not raw_id.isdigit():
        await callback.answer("Topilmadi yoki eskirgan.", show_alert=True)
        return
    await state.set_state(AdminStates.commenting)
    await state.update_data(comment_booking_id=int(raw_id))
    await callback.message.answer(f"💬 #{raw_id} uchun izoh yozing (o'chirish uchun «-» yuboring):")
    await callback.answer()


@router.message(AdminStates.commenting, F.text, ~F.text.startswith("/"))
async def on_comment_text(message: Message, state: FSMContext, booking_service: BookingService):
    data = await state.get_data()
    booking_id = data.get("comment_booking_id")
    await state.clear()
    if booking_id is None:
        await message.answer("Sessiya eskirdi, /pending")
        return
    comment = None if message.text.strip() == "-" else message.text
    try:
        booking = await booking_service.set_comment(booking_id, comment)
    except BookingError as exc:
        await message.answer(user_friendly_error(exc))
        return
    except SQLAlchemyError:
        corr_id = new_corr_id()
        logger.exception("admin: comment failed tg=%s booking=%s corr=%s", message.from_user.id, booking_id, corr_id)
        await message.answer(f"Xatolik yuz berdi. (corr={corr_id})")
        return
    logger.info("admin: comment tg=%s booking=%s cleared=%s", message.from_user.id, booking_id, comment is None)
    await message.answer(booking_caption(booking), reply_markup=admin_booking_keyboard(booking))


@router.message(Command("stats"))
@router.message(F.text == MENU_STATS)
async def on_stats(message: Message, booking_service: BookingService, settings: Settings):
    if not await _ensure_admin(booking_service, settings, message.from_user.id):
        await message.answer(NO_ACCESS)
        return
    today = local_now(settings.timezone).date()
    last_day = calendar.monthrange(today.year, today.month)[1]
    start = today.replace(day=1).isoformat()
    end = today.replace(day=last_day).isoformat()
    corr_id = new_corr_id()
    try:
        report = await booking_service.get_statistics(start, end)
    except SQLAlchemyError:
        logger.exception("admin: stats failed tg=%s corr=%s", message.from_user.id, corr_id)
        await message.answer(f"Xatolik yuz berdi. (corr={corr_id})")
        return
    await message.answer(format_statistics(report))
