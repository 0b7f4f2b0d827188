from datetime import date, datetime
import re
from zoneinfo import ZoneInfo

from clinic_booking.services.errors import InvalidInput, MalformedTime

SLOT_DURATION_MINUTES = 30  # фиксированная длительность приёма
DEFAULT_WORK_START = "09:00"
DEFAULT_WORK_END = "18:00"
MINUTES_PER_DAY = 24 * 60
_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def to_minutes(hhmm: str | None) -> int:
    """Parse ``HH:MM`` into minutes since midnight.

    Raises MalformedTime unless the value has exactly two numeric fields with
    hour in [0, 23] and minute in [0, 59].
    """
    if not isinstance(hhmm, str):
        raise MalformedTime(hhmm)
    parts = hhmm.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise MalformedTime(hhmm)
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise MalformedTime(hhmm)
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"minutes out of day range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """Half-open intervals [a, a+da) and [b, b+db) share a point."""
    return start_a < start_b + duration_b and start_b < start_a + duration_a


def generate_grid(work_start: str, work_end: str, step_minutes: int = SLOT_DURATION_MINUTES) -> list[str]:
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    start = to_minutes(work_start)
    end = to_minutes(work_end)
    return [format_minutes(m) for m in range(start, end, step_minutes)]


def parse_date(value: str | None) -> date:
    """Strict ``YYYY-MM-DD``; zero padding keeps lexical order == calendar order."""
    raw = (value or "").strip()
    if not _ISO_DATE.fullmatch(raw):
        raise InvalidInput(f"date {value!r} must be YYYY-MM-DD")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidInput(f"date {value!r} must be YYYY-MM-DD") from exc


def canonical_date(value: str | None) -> str:
    return parse_date(value).isoformat()


def local_now(tz_name: str) -> datetime:
    return datetime.now(ZoneInfo(tz_name))


def minute_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute
