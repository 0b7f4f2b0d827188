import asyncio
import logging

from clinic_booking.bot import create_bot, create_dispatcher
from clinic_booking.config import Settings
from clinic_booking.db import init_models, make_engine, make_session_factory
from clinic_booking.handlers import router as handlers_router
from clinic_booking.services.booking import BookingService, build_booking_service
from clinic_booking.services.notifications import TelegramNotifier

logger = logging.getLogger(__name__)


def setup_logging(level):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def setup_dispatcher(settings: Settings, booking_service: BookingService):
    dispatcher = create_dispatcher(settings)
    dispatcher.include_router(handlers_router)
    # хендлеры получают их по имени параметра
    dispatcher.workflow_data["booking_service"] = booking_service
    dispatcher.workflow_data["settings"] = settings
    return dispatcher


async def seed_default_doctor(booking_service: BookingService, settings: Settings) -> None:
    if not settings.default_doctor_name:
        return
    if await booking_service.users.find_default_provider() is not None:
        return
    doctor = await booking_service.users.create_provider(name=settings.default_doctor_name)
    logger.info("main: seeded default doctor id=%s name=%s", doctor.id, doctor.name)


async def main():
    settings = Settings()
    setup_logging(settings.log_level)
    if not settings.bot_token:
        raise SystemExit("BOT_TOKEN is not set")

    engine = make_engine(settings.database_url)
    await init_models(engine)
    session_factory = make_session_factory(engine)

    bot = create_bot(settings.bot_token)
    booking_service = build_booking_service(
        session_factory,
        notifier=TelegramNotifier(bot),
        timezone=settings.timezone,
        unit_price=settings.fixed_service_price,
    )
    await seed_default_doctor(booking_service, settings)
    dispatcher = setup_dispatcher(settings, booking_service)

    try:
        await dispatcher.start_polling(bot)
    finally:
        await booking_service.notifications.wait_idle()
        await bot.session.close()
        await dispatcher.storage.close()
        await engine.dispose()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
