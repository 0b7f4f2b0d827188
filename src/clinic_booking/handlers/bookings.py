import logging

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message
from sqlalchemy.exc import SQLAlchemyError

from clinic_booking.keyboards import MENU_MY_BOOKINGS, my_bookings_keyboard
from clinic_booking.services.booking import BookingService
from clinic_booking.services.errors import BookingError, user_friendly_error
from clinic_booking.utils.corr import new_corr_id
from .utils import edit_or_answer, format_bookings, registered_user

router = Router()
logger = logging.getLogger(__name__)


@router.message(Command("mybookings"))
@router.message(F.text == MENU_MY_BOOKINGS)
async def on_my_bookings(message: Message, booking_service: BookingService):
    user = await registered_user(booking_service, message.from_user.id)
    if user is None:
        await message.answer("Avval /start orqali ro'yxatdan o'ting.")
        return
    corr_id = new_corr_id()
    try:
        bookings = await booking_service.list_by_client(user.id)
    except SQLAlchemyError:
        logger.exception("client.bookings failed: tg=%s client_id=%s corr=%s", message.from_user.id, user.id, corr_id)
        await message.answer(f"Bronlarni yuklab bo'lmadi. Keyinroq urinib ko'ring. (corr={corr_id})")
        return
    logger.info("client.bookings: tg=%s client_id=%s count=%s", message.from_user.id, user.id, len(bookings))
    await message.answer(format_bookings(bookings), reply_markup=my_bookings_keyboard(bookings))


@router.callback_query(F.data.startswith("mybookings:cancel:"))
async def on_cancel_booking(callback: CallbackQuery, booking_service: BookingService):
    _, _, raw_id = callback.data.split(":", 2)
    user = await registered_user(booking_service, callback.from_user.id)
    if user is None or not raw_id.isdigit():
        await callback.answer("Topilmadi yoki eskirgan.", show_alert=True)
        return
    corr_id = new_corr_id()
    try:
        await booking_service.cancel_booking(int(raw_id), client_id=user.id)
        bookings = await booking_service.list_by_client(user.id)
    except BookingError as exc:
        logger.info("client.bookings: cancel rejected tg=%s booking=%s code=%s", callback.from_user.id, raw_id, exc.code)
        await callback.answer(user_friendly_error(exc), show_alert=True)
        return
    except SQLAlchemyError:
        logger.exception("client.bookings: cancel failed tg=%s booking=%s corr=%s", callback.from_user.id, raw_id, corr_id)
        await callback.answer(f"Xatolik yuz berdi. (corr={corr_id})", show_alert=True)
        return
    logger.info("client.bookings: cancelled tg=%s booking=%s", callback.from_user.id, raw_id)
    await edit_or_answer(callback, format_bookings(bookings), my_bookings_keyboard(bookings))
    await callback.answer("🚫 Bron bekor qilindi")
