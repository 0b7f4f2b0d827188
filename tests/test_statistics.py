import pytest

from clinic_booking.models import BookingStatus
from clinic_booking.services.errors import InvalidInput


async def _seed(service, doctor_id, date, time, status):
    return await service.bookings.create(client_id=None, doctor_id=doctor_id, date=date, time=time, status=status)


@pytest.mark.asyncio
async def test_january_report(service, doctor):
    seeded = [
        ("2024-01-05", "09:00", BookingStatus.COMPLETED),
        ("2024-01-05", "09:30", BookingStatus.COMPLETED),
        ("2024-01-31", "17:30", BookingStatus.COMPLETED),
        ("2024-01-10", "10:00", BookingStatus.PENDING),
        ("2024-01-11", "10:00", BookingStatus.PENDING),
        ("2024-01-01", "12:00", BookingStatus.CANCELLED),
        # вне периода
        ("2023-12-31", "09:00", BookingStatus.COMPLETED),
        ("2024-02-01", "09:00", BookingStatus.COMPLETED),
    ]
    for date, time, status in seeded:
        await _seed(service, doctor.id, date, time, status)

    report = await service.get_statistics("2024-01-01", "2024-01-31")

    assert report.total_revenue == 150000
    assert report.total_bookings == 6
    assert report.bookings_by_status == {
        "pending": 2,
        "approved": 0,
        "rejected": 0,
        "cancelled": 1,
        "completed": 3,
    }
    assert len(report.doctor_statistics) == 1
    stat = report.doctor_statistics[0]
    assert stat.doctor_id == doctor.id
    assert stat.doctor_name == "Dr. Karimov"
    assert len(stat.bookings) == 6
    assert all(b.service.price == 50000 and b.service.duration == 30 for b in stat.bookings)


@pytest.mark.asyncio
async def test_report_groups_by_doctor_and_serializes(service, doctor):
    other = await service.users.create_provider(name="Dr. Rahimov")
    await _seed(service, doctor.id, "2024-03-01", "09:00", BookingStatus.COMPLETED)
    await _seed(service, other.id, "2024-03-02", "09:00", BookingStatus.APPROVED)
    await _seed(service, None, "2024-03-03", "09:00", BookingStatus.COMPLETED)

    report = await service.get_statistics("2024-03-01", "2024-03-31")

    assert report.total_bookings == 3
    assert report.total_revenue == 100000
    assert {s.doctor_name for s in report.doctor_statistics} == {"Dr. Karimov", "Dr. Rahimov"}

    payload = report.as_dict()
    assert payload["period"] == {"start_date": "2024-03-01", "end_date": "2024-03-31"}
    assert payload["summary"]["bookings_by_status"]["approved"] == 1
    first = payload["doctor_statistics"][0]["bookings"][0]
    assert first["service"]["name"] == "30 daqiqa xizmat"
    assert first["services"] == [first["service"]]


@pytest.mark.asyncio
async def test_empty_period(service):
    report = await service.get_statistics("2025-01-01", "2025-01-31")

    assert report.total_bookings == 0
    assert report.total_revenue == 0
    assert report.doctor_statistics == []


@pytest.mark.asyncio
async def test_bad_period_dates(service):
    with pytest.raises(InvalidInput):
        await service.get_statistics("2024/01/01", "2024-01-31")
