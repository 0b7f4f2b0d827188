import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.base import BaseStorage
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.fsm.storage.redis import RedisStorage

from clinic_booking.config import Settings

logger = logging.getLogger(__name__)


def create_bot(token: str) -> Bot:
    return Bot(token=token, default=DefaultBotProperties(parse_mode=None))


def create_storage(settings: Settings) -> BaseStorage:
    # диалоги, брошенные на полпути, истекают сами
    if settings.redis_url:
        logger.info("bot: FSM storage redis ttl=%ss", settings.fsm_state_ttl_sec)
        return RedisStorage.from_url(
            settings.redis_url,
            state_ttl=settings.fsm_state_ttl_sec,
            data_ttl=settings.fsm_state_ttl_sec,
        )
    logger.warning("bot: BOT_REDIS_URL is not set, FSM state lives in memory")
    return MemoryStorage()


def create_dispatcher(settings: Settings) -> Dispatcher:
    return Dispatcher(storage=create_storage(settings))
