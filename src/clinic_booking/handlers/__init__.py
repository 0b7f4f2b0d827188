from aiogram import Router

from . import admin, booking, bookings, start

router = Router()
router.include_router(start.router)
router.include_router(admin.router)
router.include_router(bookings.router)
router.include_router(booking.router)
