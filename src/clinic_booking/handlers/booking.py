from datetime import timedelta
import logging

from aiogram import F, Router
from aiogram.filters import Command, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from sqlalchemy.exc import SQLAlchemyError

from clinic_booking.config import Settings
from clinic_booking.dto import BookingRequest
from clinic_booking.keyboards import (
    MENU_AVAILABLE,
    MENU_BOOK,
    booking_confirm_keyboard,
    day_keyboard,
    main_menu_keyboard,
    month_keyboard,
    service_keyboard,
    time_keyboard,
)
from clinic_booking.services.booking import BookingService
from clinic_booking.services.errors import BookingError, SlotUnavailable, user_friendly_error
from clinic_booking.states import BookingStates
from clinic_booking.utils.corr import new_corr_id
from clinic_booking.utils.roles import status_label
from clinic_booking.utils.time import local_now
from .utils import (
    booking_draft,
    day_options,
    edit_or_answer,
    format_slots,
    is_admin,
    month_options,
    registered_user,
    update_draft,
)

router = Router()
logger = logging.getLogger(__name__)

NOT_REGISTERED = "Avval /start orqali ro'yxatdan o'ting."
GENERIC_FAILURE = "Xatolik yuz berdi, keyinroq urinib ko'ring. (corr={corr})"


def _today(settings: Settings):
    return local_now(settings.timezone).date()


@router.message(Command("book"), StateFilter("*"))
@router.message(F.text == MENU_BOOK, StateFilter("*"))
async def on_book(message: Message, state: FSMContext, booking_service: BookingService, settings: Settings):
    user = await registered_user(booking_service, message.from_user.id)
    if user is None:
        await message.answer(NOT_REGISTERED)
        return
    await state.set_state(BookingStates.choosing_month)
    await state.update_data(draft={})
    await message.answer("📅 Oyni tanlang:", reply_markup=month_keyboard(month_options(_today(settings))))


@router.callback_query(F.data == "book:restart")
async def on_book_restart(callback: CallbackQuery, state: FSMContext, booking_service: BookingService, settings: Settings):
    user = await registered_user(booking_service, callback.from_user.id)
    if user is None:
        await callback.answer(NOT_REGISTERED, show_alert=True)
        return
    await state.set_state(BookingStates.choosing_month)
    await state.update_data(draft={})
    await edit_or_answer(callback, "📅 Oyni tanlang:", month_keyboard(month_options(_today(settings))))
    await callback.answer()


@router.callback_query(BookingStates.choosing_month, F.data.startswith("book:month:"))
async def on_month(callback: CallbackQuery, state: FSMContext, settings: Settings):
    _, _, month_key = callback.data.split(":", 2)
    days = day_options(month_key, _today(settings), settings.booking_horizon_days)
    if not days:
        await callback.answer("Bu oyda tanlash mumkin bo'lgan kun yo'q.", show_alert=True)
        return
    await update_draft(state, month=month_key)
    await state.set_state(BookingStates.choosing_day)
    await edit_or_answer(callback, "📆 Kunni tanlang:", day_keyboard(days))
    await callback.answer()


async def _show_times(callback: CallbackQuery, state: FSMContext, booking_service: BookingService, date_str: str) -> bool:
    draft = await booking_draft(state)
    provider = await booking_service.resolve_provider(draft.get("doctor_id"))
    slots = await booking_service.list_available_slots(provider.id, date_str)
    if not slots:
        return False
    await update_draft(state, date=date_str, doctor_id=provider.id)
    await state.set_state(BookingStates.choosing_time)
    await edit_or_answer(callback, f"⏰ {date_str} uchun vaqtni tanlang:", time_keyboard(slots))
    return True


async def _reshow_times(callback: CallbackQuery, state: FSMContext, booking_service: BookingService, date_str: str):
    """Time picker again after a lost slot; the callback is already answered."""
    corr_id = new_corr_id()
    try:
        if await _show_times(callback, state, booking_service, date_str):
            return
    except BookingError as exc:
        await state.clear()
        await edit_or_answer(callback, f"❌ {user_friendly_error(exc)} /book")
        return
    except SQLAlchemyError:
        logger.exception("booking: slots failed tg=%s date=%s corr=%s", callback.from_user.id, date_str, corr_id)
        await state.clear()
        await edit_or_answer(callback, GENERIC_FAILURE.format(corr=corr_id))
        return
    await state.clear()
    await edit_or_answer(callback, "Bu kunda bo'sh vaqt qolmagan. /book")


@router.callback_query(BookingStates.choosing_day, F.data.startswith("book:day:"))
async def on_day(callback: CallbackQuery, state: FSMContext, booking_service: BookingService):
    _, _, date_str = callback.data.split(":", 2)
    corr_id = new_corr_id()
    try:
        shown = await _show_times(callback, state, booking_service, date_str)
    except BookingError as exc:
        await callback.answer(user_friendly_error(exc), show_alert=True)
        return
    except SQLAlchemyError:
        logger.exception("booking: slots failed tg=%s date=%s corr=%s", callback.from_user.id, date_str, corr_id)
        await callback.answer(GENERIC_FAILURE.format(corr=corr_id), show_alert=True)
        return
    if not shown:
        await callback.answer("Bu kunda bo'sh vaqt qolmagan. Boshqa kunni tanlang.", show_alert=True)
        return
    await callback.answer()


@router.callback_query(BookingStates.choosing_time, F.data == "book:back_to_day")
async def on_back_to_day(callback: CallbackQuery, state: FSMContext, settings: Settings):
    draft = await booking_draft(state)
    days = day_options(draft.get("month") or "", _today(settings), settings.booking_horizon_days)
    if not days:
        await state.set_state(BookingStates.choosing_month)
        await edit_or_answer(callback, "📅 Oyni tanlang:", month_keyboard(month_options(_today(settings))))
    else:
        await state.set_state(BookingStates.choosing_day)
        await edit_or_answer(callback, "📆 Kunni tanlang:", day_keyboard(days))
    await callback.answer()


@router.callback_query(BookingStates.choosing_time, F.data.startswith("book:time:"))
async def on_time(callback: CallbackQuery, state: FSMContext, booking_service: BookingService):
    _, _, time_str = callback.data.split(":", 2)
    draft = await booking_draft(state)
    if not draft.get("date") or not draft.get("doctor_id"):
        await callback.answer("Sessiya eskirdi, /book buyrug'ini qayta yuboring.", show_alert=True)
        return
    try:
        available = await booking_service.check_availability(draft["doctor_id"], draft["date"], time_str)
    except BookingError as exc:
        await callback.answer(user_friendly_error(exc), show_alert=True)
        return
    if not available:
        await callback.answer("Bu vaqt band bo'lib qoldi. Boshqasini tanlang.", show_alert=True)
        await _reshow_times(callback, state, booking_service, draft["date"])
        return
    await update_draft(state, time=time_str)
    await state.set_state(BookingStates.choosing_service)
    await edit_or_answer(
        callback,
        "💈 Xizmatni tanlang:",
        service_keyboard(booking_service.statistics.service_descriptor()),
    )
    await callback.answer()


@router.callback_query(BookingStates.choosing_service, F.data == "book:back_to_time")
async def on_back_to_time(callback: CallbackQuery, state: FSMContext, booking_service: BookingService):
    draft = await booking_draft(state)
    if not draft.get("date"):
        await callback.answer("Sessiya eskirdi, /book buyrug'ini qayta yuboring.", show_alert=True)
        return
    corr_id = new_corr_id()
    try:
        shown = await _show_times(callback, state, booking_service, draft["date"])
    except BookingError as exc:
        await callback.answer(user_friendly_error(exc), show_alert=True)
        return
    except SQLAlchemyError:
        logger.exception("booking: slots failed tg=%s date=%s corr=%s", callback.from_user.id, draft["date"], corr_id)
        await callback.answer(GENERIC_FAILURE.format(corr=corr_id), show_alert=True)
        return
    if not shown:
        await callback.answer("Bu kunda bo'sh vaqt qolmagan. /book", show_alert=True)
        return
    await callback.answer()


@router.callback_query(BookingStates.choosing_service, F.data.startswith("book:service:"))
async def on_service(callback: CallbackQuery, state: FSMContext, booking_service: BookingService):
    draft = await booking_draft(state)
    service = booking_service.statistics.service_descriptor()
    price = f"{service.price:,.0f}".replace(",", " ")
    await state.set_state(BookingStates.confirming)
    await edit_or_answer(
        callback,
        (
            "📝 Bronni tasdiqlang:\n\n"
            f"📆 Sana: {draft.get('date')}\n"
            f"⏰ Vaqt: {draft.get('time')}\n"
            f"💈 Xizmat: {service.name} ({service.duration} daqiqa)\n"
            f"💰 Narx: {price} so'm"
        ),
        booking_confirm_keyboard(),
    )
    await callback.answer()


@router.callback_query(BookingStates.confirming, F.data == "book:confirm")
async def on_confirm(callback: CallbackQuery, state: FSMContext, booking_service: BookingService):
    draft = await booking_draft(state)
    user = await registered_user(booking_service, callback.from_user.id)
    if user is None:
        await callback.answer(NOT_REGISTERED, show_alert=True)
        return
    if not draft.get("date") or not draft.get("time"):
        await state.clear()
        await callback.answer("Sessiya eskirdi, /book buyrug'ini qayta yuboring.", show_alert=True)
        return

    corr_id = new_corr_id()
    request = BookingRequest(
        phone_number=user.phone_number,
        date=draft["date"],
        time=draft["time"],
        client_name=user.name,
        doctor_id=draft.get("doctor_id"),
        client_id=user.id,
    )
    try:
        booking = await booking_service.create_booking(request)
    except SlotUnavailable as exc:
        logger.info(
            "booking: confirm lost slot tg=%s %s %s reason=%s",
            callback.from_user.id,
            request.date,
            request.time,
            exc.reason.value,
        )
        await callback.answer(user_friendly_error(exc), show_alert=True)
        await _reshow_times(callback, state, booking_service, request.date)
        return
    except BookingError as exc:
        logger.warning("booking: confirm failed tg=%s code=%s msg=%s", callback.from_user.id, exc.code, exc.message)
        await callback.answer(user_friendly_error(exc), show_alert=True)
        return
    except SQLAlchemyError:
        logger.exception("booking: confirm failed tg=%s corr=%s", callback.from_user.id, corr_id)
        await callback.answer(GENERIC_FAILURE.format(corr=corr_id), show_alert=True)
        return

    await state.clear()
    logger.info("booking: confirmed tg=%s booking=%s corr=%s", callback.from_user.id, booking.id, corr_id)
    await edit_or_answer(
        callback,
        (
            "✅ Bron qabul qilindi!\n\n"
            f"🎫 #{booking.id}\n"
            f"📆 Sana: {booking.date}\n"
            f"⏰ Vaqt: {booking.time}\n"
            f"👨‍⚕️ Shifokor: {booking.doctor_name}\n"
            f"📊 Holat: {status_label(booking.status)}"
        ),
    )
    await callback.answer()


@router.callback_query(F.data == "book:abort")
async def on_abort(callback: CallbackQuery, state: FSMContext):
    await state.clear()
    await edit_or_answer(callback, "❌ Bron bekor qilindi.")
    await callback.answer()


@router.callback_query(F.data == "menu:main")
async def on_main_menu(callback: CallbackQuery, state: FSMContext, booking_service: BookingService, settings: Settings):
    await state.clear()
    user = await booking_service.users.find_by_tg_id(callback.from_user.id)
    await callback.message.answer(
        "🏠 Bosh sahifa",
        reply_markup=main_menu_keyboard(is_admin(user, callback.from_user.id, settings)),
    )
    await callback.answer()


@router.callback_query(F.data.startswith("book:"))
async def on_stale_booking_callback(callback: CallbackQuery):
    logger.info("booking: stale callback tg=%s data=%s", callback.from_user.id, callback.data)
    await callback.answer("Sessiya eskirdi, /book buyrug'ini qayta yuboring.", show_alert=True)


@router.message(Command("available"))
@router.message(F.text == MENU_AVAILABLE)
async def on_available(message: Message, booking_service: BookingService, settings: Settings):
    today = _today(settings)
    corr_id = new_corr_id()
    lines = ["🕒 Bo'sh vaqtlar:"]
    try:
        for day in (today, today + timedelta(days=1)):
            date_str = day.isoformat()
            slots = await booking_service.list_available_slots(None, date_str)
            lines.append(format_slots(date_str, slots))
    except BookingError as exc:
        await message.answer(user_friendly_error(exc))
        return
    except SQLAlchemyError:
        logger.exception("booking: available failed tg=%s corr=%s", message.from_user.id, corr_id)
        await message.answer(GENERIC_FAILURE.format(corr=corr_id))
        return
    lines.append("\n📅 Bron qilish uchun /book")
    await message.answer("\n".join(lines))
