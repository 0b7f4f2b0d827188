from types import SimpleNamespace

import pytest
import pytest_asyncio
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage
from sqlalchemy.exc import OperationalError

from clinic_booking.config import Settings
from clinic_booking.dto import BookingRequest
from clinic_booking.handlers import admin as admin_handlers
from clinic_booking.handlers import bookings as bookings_handlers
from clinic_booking.handlers import booking as booking_handlers
from clinic_booking.handlers import start as start_handlers
from clinic_booking.models import BookingStatus
from clinic_booking.states import BookingStates

from .conftest import TOMORROW

TG_ID = 3001


class FakeMessage:
    def __init__(self, text=None, contact=None, user_id=TG_ID, username="test_user"):
        self.text = text
        self.contact = contact
        self.from_user = SimpleNamespace(id=user_id, username=username, full_name="Test User")
        self.answers: list[tuple[str, object]] = []
        self.edits: list[tuple[str, object]] = []

    async def answer(self, text, reply_markup=None, **kwargs):
        self.answers.append((text, reply_markup))

    async def edit_text(self, text, reply_markup=None, **kwargs):
        self.edits.append((text, reply_markup))


class FakeCallback:
    def __init__(self, data, user_id=TG_ID):
        self.data = data
        self.from_user = SimpleNamespace(id=user_id, username="test_user")
        self.message = FakeMessage(user_id=user_id)
        self.alerts: list[tuple[str, bool]] = []

    async def answer(self, text=None, show_alert=False, **kwargs):
        self.alerts.append((text, show_alert))


@pytest.fixture
def settings():
    return Settings(BOT_TOKEN="test", ADMIN_TG_IDS=[])


@pytest_asyncio.fixture
async def state():
    storage = MemoryStorage()
    yield FSMContext(storage=storage, key=StorageKey(bot_id=1, chat_id=TG_ID, user_id=TG_ID))
    await storage.close()


@pytest_asyncio.fixture
async def registered(service):
    user = await service.users.register_telegram_user(tg_id=TG_ID, name="Malika")
    return await service.users.attach_phone(user.id, "+998935556677")


@pytest.mark.asyncio
async def test_registration_name_then_phone(service, settings, state):
    await start_handlers.handle_start(FakeMessage("/start"), state, booking_service=service, settings=settings)
    assert await state.get_state() == BookingStates.awaiting_name.state

    short = FakeMessage("A")
    await start_handlers.on_name(short, state)
    assert await state.get_state() == BookingStates.awaiting_name.state
    assert short.answers[0][0].startswith("❌")

    await start_handlers.on_name(FakeMessage("Malika Yusupova"), state)
    assert await state.get_state() == BookingStates.awaiting_phone.state

    bad_phone = FakeMessage("12")
    await start_handlers.on_phone(bad_phone, state, booking_service=service, settings=settings)
    assert await state.get_state() == BookingStates.awaiting_phone.state

    done = FakeMessage("90 555 66 77")
    await start_handlers.on_phone(done, state, booking_service=service, settings=settings)

    assert await state.get_state() is None
    user = await service.users.find_by_tg_id(TG_ID)
    assert user.phone_number == "+998905556677"
    assert user.name == "Malika Yusupova"
    assert user.tg_username == "test_user"
    assert "Ro'yxatdan o'tdingiz" in done.answers[-1][0]


@pytest.mark.asyncio
async def test_registration_accepts_shared_contact(service, settings, state):
    await state.set_state(BookingStates.awaiting_phone)
    await state.update_data(reg_name="Sardor")
    contact = SimpleNamespace(phone_number="998901230000", user_id=TG_ID)

    await start_handlers.on_phone(FakeMessage(contact=contact), state, booking_service=service, settings=settings)

    user = await service.users.find_by_tg_id(TG_ID)
    assert user.phone_number == "+998901230000"
    assert user.name == "Sardor"


@pytest.mark.asyncio
async def test_start_for_registered_user_shows_menu(service, settings, state, registered):
    message = FakeMessage("/start")
    await start_handlers.handle_start(message, state, booking_service=service, settings=settings)

    assert await state.get_state() is None
    assert "Malika" in message.answers[0][0]


@pytest.mark.asyncio
async def test_book_requires_registration(service, settings, state):
    message = FakeMessage("/book")
    await booking_handlers.on_book(message, state, booking_service=service, settings=settings)

    assert await state.get_state() is None
    assert "/start" in message.answers[0][0]


@pytest.mark.asyncio
async def test_booking_flow_to_confirmation(service, settings, state, doctor, registered, notifier):
    await booking_handlers.on_book(FakeMessage("/book"), state, booking_service=service, settings=settings)
    assert await state.get_state() == BookingStates.choosing_month.state

    await state.update_data(draft={"month": TOMORROW[:7]})
    await state.set_state(BookingStates.choosing_day)
    day = FakeCallback(f"book:day:{TOMORROW}")
    await booking_handlers.on_day(day, state, booking_service=service)
    assert await state.get_state() == BookingStates.choosing_time.state
    assert "book:time:09:00" in [b.callback_data for row in day.message.edits[-1][1].inline_keyboard for b in row]

    await booking_handlers.on_time(FakeCallback("book:time:09:30"), state, booking_service=service)
    assert await state.get_state() == BookingStates.choosing_service.state

    await booking_handlers.on_service(FakeCallback("book:service:0"), state, booking_service=service)
    assert await state.get_state() == BookingStates.confirming.state

    confirm = FakeCallback("book:confirm")
    await booking_handlers.on_confirm(confirm, state, booking_service=service)

    assert await state.get_state() is None
    assert "Bron qabul qilindi" in confirm.message.edits[-1][0]
    bookings = await service.list_by_client(registered.id)
    assert [(b.date, b.time, b.status) for b in bookings] == [(TOMORROW, "09:30", BookingStatus.PENDING)]
    await service.notifications.wait_idle()
    assert notifier.sent[0][0] == str(TG_ID)


@pytest.mark.asyncio
async def test_confirm_after_slot_was_taken(service, settings, state, doctor, registered):
    await state.set_state(BookingStates.confirming)
    await state.update_data(draft={"date": TOMORROW, "time": "11:00", "doctor_id": doctor.id})
    await service.create_booking(BookingRequest(phone_number="+998901000001", date=TOMORROW, time="11:00"))

    confirm = FakeCallback("book:confirm")
    await booking_handlers.on_confirm(confirm, state, booking_service=service)

    assert confirm.alerts[0] == ("Tanlangan vaqt allaqachon band. Boshqa vaqtni tanlang.", True)
    assert await state.get_state() == BookingStates.choosing_time.state
    assert await service.list_by_client(registered.id) == []


@pytest.mark.asyncio
async def test_cancel_from_my_bookings(service, state, doctor, registered):
    booking = await service.create_booking(
        BookingRequest(phone_number=registered.phone_number, date=TOMORROW, time="12:00", client_id=registered.id)
    )

    callback = FakeCallback(f"mybookings:cancel:{booking.id}")
    await bookings_handlers.on_cancel_booking(callback, booking_service=service)

    assert (await service.get_booking(booking.id)).status == BookingStatus.CANCELLED
    assert "Bron bekor qilindi" in callback.alerts[-1][0]


@pytest.mark.asyncio
async def test_cannot_cancel_foreign_booking(service, state, doctor, registered):
    booking = await service.create_booking(
        BookingRequest(phone_number="+998901000002", date=TOMORROW, time="12:00")
    )

    callback = FakeCallback(f"mybookings:cancel:{booking.id}")
    await bookings_handlers.on_cancel_booking(callback, booking_service=service)

    assert (await service.get_booking(booking.id)).status == BookingStatus.PENDING
    assert callback.alerts[-1] == ("Topilmadi yoki eskirgan.", True)


def _failing_slots(service, monkeypatch):
    async def list_available_slots(provider_id, date):
        raise OperationalError("SELECT bookings", {}, Exception("database is locked"))

    monkeypatch.setattr(service, "list_available_slots", list_available_slots)


@pytest.mark.asyncio
async def test_taken_time_with_broken_slot_listing(service, state, doctor, registered, monkeypatch):
    await service.create_booking(BookingRequest(phone_number="+998901000003", date=TOMORROW, time="10:00"))
    await state.set_state(BookingStates.choosing_time)
    await state.update_data(draft={"date": TOMORROW, "doctor_id": doctor.id})
    _failing_slots(service, monkeypatch)

    callback = FakeCallback("book:time:10:00")
    await booking_handlers.on_time(callback, state, booking_service=service)

    assert callback.alerts == [("Bu vaqt band bo'lib qoldi. Boshqasini tanlang.", True)]
    assert "corr=" in callback.message.edits[-1][0]
    assert await state.get_state() is None


@pytest.mark.asyncio
async def test_lost_slot_on_confirm_with_broken_slot_listing(service, state, doctor, registered, monkeypatch):
    await service.create_booking(BookingRequest(phone_number="+998901000004", date=TOMORROW, time="11:00"))
    await state.set_state(BookingStates.confirming)
    await state.update_data(draft={"date": TOMORROW, "time": "11:00", "doctor_id": doctor.id})
    _failing_slots(service, monkeypatch)

    confirm = FakeCallback("book:confirm")
    await booking_handlers.on_confirm(confirm, state, booking_service=service)

    assert confirm.alerts == [("Tanlangan vaqt allaqachon band. Boshqa vaqtni tanlang.", True)]
    assert "corr=" in confirm.message.edits[-1][0]
    assert await state.get_state() is None


def test_parse_status_callback_is_exact():
    assert admin_handlers.parse_status_callback("APPROVED") == BookingStatus.APPROVED
    assert admin_handlers.parse_status_callback("approved") is None
    assert admin_handlers.parse_status_callback(" PENDING ") is None
    assert admin_handlers.parse_status_callback("") is None


@pytest.mark.asyncio
async def test_admin_status_callback(service, doctor):
    settings = Settings(BOT_TOKEN="test", ADMIN_TG_IDS=[TG_ID])
    booking = await service.create_booking(BookingRequest(phone_number="+998901000005", date=TOMORROW, time="12:00"))

    stale = FakeCallback(f"admin:status:{booking.id}:ARCHIVED")
    await admin_handlers.on_status(stale, booking_service=service, settings=settings)
    assert stale.alerts == [("Topilmadi yoki eskirgan.", True)]
    assert (await service.get_booking(booking.id)).status == BookingStatus.PENDING

    approve = FakeCallback(f"admin:status:{booking.id}:APPROVED")
    await admin_handlers.on_status(approve, booking_service=service, settings=settings)
    assert (await service.get_booking(booking.id)).status == BookingStatus.APPROVED
    assert "COMPLETED" in approve.message.edits[-1][1].inline_keyboard[0][0].callback_data
