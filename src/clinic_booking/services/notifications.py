import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Optional, Protocol

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest, TelegramForbiddenError

from clinic_booking.dto import BookingDTO
from clinic_booking.models import BookingStatus
from clinic_booking.utils.roles import status_label

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, chat_id: str, text: str) -> bool: ...


class TelegramNotifier:
    """Best-effort delivery through the bot; never raises."""

    def __init__(self, bot: Bot):
        self._bot = bot

    async def notify(self, chat_id: str, text: str) -> bool:
        try:
            await self._bot.send_message(chat_id=chat_id, text=text)
            return True
        except (TelegramForbiddenError, TelegramBadRequest) as exc:
            logger.warning("notify: chat=%s blocked the bot or not found: %s", chat_id, exc)
        except TelegramAPIError:
            logger.exception("notify: telegram error chat=%s", chat_id)
        except Exception:
            logger.exception("notify: unexpected failure chat=%s", chat_id)
        return False


def booking_created_text(booking: BookingDTO) -> str:
    return (
        "📅 Yangi bron qilindi!\n\n"
        f"📆 Sana: {booking.date}\n"
        f"⏰ Vaqt: {booking.time}\n"
        f"👨‍⚕️ Shifokor: {booking.doctor_name}\n"
        f"📊 Holat: {status_label(booking.status)}"
    )


def status_changed_text(booking: BookingDTO, old_status: BookingStatus) -> str:
    return (
        "🔄 Bron holati yangilandi!\n\n"
        f"📆 Sana: {booking.date}\n"
        f"⏰ Vaqt: {booking.time}\n"
        f"👨‍⚕️ Shifokor: {booking.doctor_name}\n"
        f"📊 Eski holat: {status_label(old_status)}\n"
        f"✅ Yangi holat: {status_label(booking.status)}"
    )


class NotificationDispatcher:
    """Fire-and-forget side channel for booking notifications.

    Tasks are kept referenced until they finish so they are not garbage
    collected mid-flight; ``wait_idle`` lets shutdown and tests drain them.
    """

    def __init__(self, notifier: Notifier):
        self._notifier = notifier
        self._tasks: set[asyncio.Task] = set()

    def dispatch(
        self,
        chat_id: Optional[str],
        text: str,
        on_delivered: Optional[Callable[[], Awaitable[object]]] = None,
    ) -> Optional[asyncio.Task]:
        if not chat_id:
            return None
        task = asyncio.create_task(self._deliver(chat_id, text, on_delivered))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, chat_id: str, text: str, on_delivered) -> None:
        try:
            delivered = await self._notifier.notify(chat_id, text)
            if delivered and on_delivered is not None:
                await on_delivered()
        except Exception:
            logger.exception("notify: delivery task failed chat=%s", chat_id)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
