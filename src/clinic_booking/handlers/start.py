import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandStart, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, ReplyKeyboardRemove
from sqlalchemy.exc import SQLAlchemyError

from clinic_booking.config import Settings
from clinic_booking.keyboards import MENU_HELP, main_menu_keyboard, phone_request_keyboard
from clinic_booking.services.booking import BookingService
from clinic_booking.services.errors import BookingError, user_friendly_error
from clinic_booking.states import BookingStates
from clinic_booking.utils.contacts import normalize_phone, parse_name
from clinic_booking.utils.corr import new_corr_id
from clinic_booking.utils.roles import role_label
from .utils import is_admin

router = Router()
logger = logging.getLogger(__name__)

HELP_TEXT = (
    "ℹ️ Yordam\n\n"
    "/book — qabulga yozilish\n"
    "/mybookings — mening bronlarim\n"
    "/available — bugungi va ertangi bo'sh vaqtlar\n"
    "/cancel — joriy amalni bekor qilish\n\n"
    "Qabul 30 daqiqa davom etadi. Bron shifokor tasdiqlagandan keyin faol bo'ladi."
)


@router.message(CommandStart(), StateFilter("*"))
async def handle_start(message: Message, state: FSMContext, booking_service: BookingService, settings: Settings):
    corr_id = new_corr_id()
    await state.clear()
    try:
        user = await booking_service.users.register_telegram_user(
            tg_id=message.from_user.id,
            name=None,
            tg_username=message.from_user.username,
        )
    except SQLAlchemyError:
        logger.exception("start: register failed tg=%s corr=%s", message.from_user.id, corr_id)
        await message.answer(f"Xatolik yuz berdi, keyinroq urinib ko'ring. (corr={corr_id})")
        return
    logger.info("start: tg=%s user_id=%s has_phone=%s", message.from_user.id, user.id, bool(user.phone_number))

    if user.phone_number and user.name:
        admin = is_admin(user, message.from_user.id, settings)
        text = f"👋 Xush kelibsiz, {user.name}!\nQuyidagi menyudan foydalaning."
        if admin:
            text += f"\n\nRolingiz: {role_label(user.role)}. /pending, /stats"
        await message.answer(text, reply_markup=main_menu_keyboard(admin))
        return

    await state.set_state(BookingStates.awaiting_name)
    await message.answer(
        "👋 Assalomu alaykum! Qabulga yozilish uchun ro'yxatdan o'ting.\n\n✍️ Ismingizni yuboring:",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(Command("help"))
@router.message(F.text == MENU_HELP)
async def on_help(message: Message):
    await message.answer(HELP_TEXT)


@router.message(Command("cancel"), StateFilter("*"))
async def on_cancel(message: Message, state: FSMContext):
    current = await state.get_state()
    await state.clear()
    if current is None:
        await message.answer("Bekor qilinadigan amal yo'q.")
        return
    logger.info("start: flow aborted tg=%s state=%s", message.from_user.id, current)
    await message.answer("❌ Amal bekor qilindi. /start")


@router.message(BookingStates.awaiting_name, F.text, ~F.text.startswith("/"))
async def on_name(message: Message, state: FSMContext):
    name, error = parse_name(message.text)
    if error:
        await message.answer(error)
        return
    await state.update_data(reg_name=name)
    await state.set_state(BookingStates.awaiting_phone)
    await message.answer(
        "📱 Telefon raqamingizni yuboring (tugma orqali yoki +998XXXXXXXXX ko'rinishida):",
        reply_markup=phone_request_keyboard(),
    )


@router.message(BookingStates.awaiting_phone, F.contact | (F.text & ~F.text.startswith("/")))
async def on_phone(message: Message, state: FSMContext, booking_service: BookingService, settings: Settings):
    if message.contact and message.contact.user_id not in (None, message.from_user.id):
        await message.answer("❌ Iltimos, o'zingizning raqamingizni yuboring.")
        return
    raw = message.contact.phone_number if message.contact else message.text
    phone = normalize_phone(raw)
    if not phone:
        await message.answer("❌ Telefon raqami noto'g'ri. Masalan: +998901234567")
        return

    data = await state.get_data()
    users = booking_service.users
    corr_id = new_corr_id()
    try:
        user = await users.register_telegram_user(
            tg_id=message.from_user.id,
            name=data.get("reg_name"),
            tg_username=message.from_user.username,
        )
        user = await users.attach_phone(user.id, phone)
        if data.get("reg_name") and user.name != data["reg_name"]:
            user = await users.update(user.id, name=data["reg_name"])
    except BookingError as exc:
        logger.info("start: phone rejected tg=%s code=%s", message.from_user.id, exc.code)
        await message.answer(f"❌ {user_friendly_error(exc)}")
        return
    except SQLAlchemyError:
        logger.exception("start: phone save failed tg=%s corr=%s", message.from_user.id, corr_id)
        await message.answer(f"Xatolik yuz berdi, keyinroq urinib ko'ring. (corr={corr_id})")
        return

    await state.clear()
    logger.info("start: registered tg=%s user_id=%s", message.from_user.id, user.id)
    await message.answer(
        f"✅ Ro'yxatdan o'tdingiz, {user.name}!\n📅 Qabulga yozilish uchun /book buyrug'idan foydalaning.",
        reply_markup=main_menu_keyboard(is_admin(user, message.from_user.id, settings)),
    )
