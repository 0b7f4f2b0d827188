from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from clinic_booking.db import init_models, make_engine, make_session_factory
from clinic_booking.services.booking import build_booking_service

TZ = ZoneInfo("Asia/Tashkent")
# вторник, 10:15 по Ташкенту
FIXED_NOW = datetime(2026, 10, 20, 10, 15, tzinfo=TZ)
TODAY = "2026-10-20"
TOMORROW = "2026-10-21"
YESTERDAY = "2026-10-19"


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotifier:
    def __init__(self, deliver: bool = True) -> None:
        self.deliver = deliver
        self.sent: list[tuple[str, str]] = []

    async def notify(self, chat_id: str, text: str) -> bool:
        self.sent.append((chat_id, text))
        return self.deliver


class ExplodingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    async def notify(self, chat_id: str, text: str) -> bool:
        self.calls += 1
        raise RuntimeError("telegram is down")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(FIXED_NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'clinic.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def service(session_factory, notifier, clock):
    service = build_booking_service(session_factory, notifier=notifier, unit_price=50000, now=clock)
    yield service
    await service.notifications.wait_idle()


@pytest_asyncio.fixture
async def doctor(service):
    return await service.users.create_provider(name="Dr. Karimov")


@pytest_asyncio.fixture
async def chat_client(service):
    user = await service.users.register_telegram_user(tg_id=111, name="Aziza", tg_username="aziza_k")
    return await service.users.attach_phone(user.id, "+998901112233")
