import pytest

from clinic_booking.dto import BookingRequest
from clinic_booking.models import Booking, BookingStatus
from clinic_booking.services.errors import InvalidInput, MalformedTime, SlotUnavailable, UnavailableReason

from .conftest import TODAY, TOMORROW, YESTERDAY


def _request(date, time, phone="+998901234567", **kwargs):
    return BookingRequest(phone_number=phone, date=date, time=time, **kwargs)


@pytest.mark.asyncio
async def test_first_slot_of_free_day_is_bookable(service, doctor):
    assert await service.check_availability(doctor.id, TOMORROW, "09:00")

    booking = await service.create_booking(_request(TOMORROW, "09:00"))

    assert booking.status == BookingStatus.PENDING
    assert booking.doctor_id == doctor.id
    assert booking.doctor.name == "Dr. Karimov"


@pytest.mark.asyncio
async def test_overlapping_request_is_rejected(service, doctor):
    await service.create_booking(_request(TOMORROW, "09:00"))

    assert not await service.check_availability(doctor.id, TOMORROW, "09:15")
    with pytest.raises(SlotUnavailable) as exc_info:
        await service.create_booking(_request(TOMORROW, "09:15", phone="+998907654321"))
    assert exc_info.value.reason == UnavailableReason.TAKEN


@pytest.mark.asyncio
async def test_back_to_back_slot_is_free(service, doctor):
    await service.create_booking(_request(TOMORROW, "09:00"))

    assert await service.check_availability(doctor.id, TOMORROW, "09:30")
    booking = await service.create_booking(_request(TOMORROW, "09:30", phone="+998907654321"))
    assert booking.time == "09:30"


@pytest.mark.asyncio
@pytest.mark.parametrize("time", ["10:14", "10:15", "09:00"])
async def test_today_at_or_before_current_minute_is_past(service, doctor, time):
    reason = await service.availability.unavailable_reason(doctor.id, TODAY, time)
    assert reason == UnavailableReason.PAST_TIME


@pytest.mark.asyncio
async def test_today_after_current_minute_is_open(service, doctor):
    assert await service.check_availability(doctor.id, TODAY, "10:16")


@pytest.mark.asyncio
async def test_yesterday_is_never_available(service, doctor):
    for time in ("09:00", "12:00", "17:30"):
        reason = await service.availability.unavailable_reason(doctor.id, YESTERDAY, time)
        assert reason == UnavailableReason.PAST_DATE


@pytest.mark.asyncio
async def test_past_rejection_is_reported_on_create(service, doctor):
    with pytest.raises(SlotUnavailable) as exc_info:
        await service.create_booking(_request(YESTERDAY, "12:00"))
    assert exc_info.value.reason == UnavailableReason.PAST_DATE

    with pytest.raises(SlotUnavailable) as exc_info:
        await service.create_booking(_request(TODAY, "10:00"))
    assert exc_info.value.reason == UnavailableReason.PAST_TIME


@pytest.mark.asyncio
@pytest.mark.parametrize("time", ["18:00", "17:45", "08:30", "08:59"])
async def test_interval_must_fit_working_hours(service, doctor, time):
    reason = await service.availability.unavailable_reason(doctor.id, TOMORROW, time)
    assert reason == UnavailableReason.OUTSIDE_WORKING_HOURS


@pytest.mark.asyncio
async def test_last_slot_ending_at_close_is_allowed(service, doctor):
    assert await service.check_availability(doctor.id, TOMORROW, "17:30")


@pytest.mark.asyncio
async def test_longer_duration_checks_whole_interval(service, doctor):
    await service.create_booking(_request(TOMORROW, "10:00"))

    assert not await service.check_availability(doctor.id, TOMORROW, "09:00", 90)
    assert await service.check_availability(doctor.id, TOMORROW, "09:00", 60)
    assert not await service.check_availability(doctor.id, TOMORROW, "17:00", 61)


@pytest.mark.asyncio
async def test_custom_working_hours(service):
    doctor = await service.users.create_provider(
        name="Dr. Sobirova", work_start_time="10:00", work_end_time="14:00"
    )

    slots = await service.availability.available_slots(doctor.id, TOMORROW)

    assert slots == ["10:00", "10:30", "11:00", "11:30", "12:00", "12:30", "13:00", "13:30"]
    assert not await service.check_availability(doctor.id, TOMORROW, "09:30")


@pytest.mark.asyncio
async def test_malformed_stored_hours_raise(service, doctor):
    await service.users.update(doctor.id, work_start_time="9am")

    with pytest.raises(MalformedTime):
        await service.availability.unavailable_reason(doctor.id, TOMORROW, "10:00")


@pytest.mark.asyncio
async def test_available_slots_full_day(service, doctor):
    slots = await service.list_available_slots(doctor.id, TOMORROW)

    assert len(slots) == 18
    assert slots[0] == "09:00"
    assert slots[-1] == "17:30"


@pytest.mark.asyncio
async def test_available_slots_today_skip_past_and_taken(service, doctor):
    await service.create_booking(_request(TODAY, "11:00"))

    slots = await service.list_available_slots(doctor.id, TODAY)

    assert slots[0] == "10:30"
    assert "11:00" not in slots
    assert "10:00" not in slots
    assert len(slots) == 14


@pytest.mark.asyncio
async def test_inactive_bookings_do_not_block(service, doctor):
    booking = await service.create_booking(_request(TOMORROW, "09:00"))
    await service.update_booking_status(booking.id, BookingStatus.REJECTED)

    assert await service.check_availability(doctor.id, TOMORROW, "09:00")
    again = await service.create_booking(_request(TOMORROW, "09:00", phone="+998907654321"))
    assert again.status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_bookings_of_other_doctor_do_not_block(service, doctor):
    other = await service.users.create_provider(name="Dr. Rahimov")
    await service.create_booking(_request(TOMORROW, "09:00", doctor_id=other.id))

    assert await service.check_availability(doctor.id, TOMORROW, "09:00")
    assert not await service.check_availability(other.id, TOMORROW, "09:00")


@pytest.mark.asyncio
@pytest.mark.parametrize("provider_id", ["", " ", "1", None, 1.5, True])
async def test_provider_id_must_be_int(service, doctor, provider_id):
    with pytest.raises(InvalidInput):
        await service.check_availability(provider_id, TOMORROW, "09:00")


@pytest.mark.asyncio
@pytest.mark.parametrize("date, time", [("", "09:00"), (TOMORROW, ""), (TOMORROW, "9am"), ("21-10-2026", "09:00")])
async def test_bad_request_shape_is_invalid_input(service, doctor, date, time):
    with pytest.raises(InvalidInput):
        await service.check_availability(doctor.id, date, time)


@pytest.mark.asyncio
async def test_malformed_stored_times_are_skipped(service, session_factory, doctor):
    async with session_factory() as session:
        for raw in ("9:75", "xx"):
            session.add(Booking(doctor_id=doctor.id, date=TOMORROW, time=raw, status=BookingStatus.PENDING))
        await session.commit()

    assert await service.check_availability(doctor.id, TOMORROW, "09:00")
    slots = await service.list_available_slots(doctor.id, TOMORROW)
    assert len(slots) == 18
    booking = await service.create_booking(_request(TOMORROW, "09:30"))
    assert booking.time == "09:30"
