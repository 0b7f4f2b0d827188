import re

UZ_COUNTRY_CODE = "998"
_PHONE_RE = re.compile(r"^\+?[0-9]{9,15}$")


def normalize_phone(phone: str | None) -> str | None:
    """Normalize a phone number to ``+<digits>``, with Uzbek-friendly rules.

    - Drops spaces, dashes and brackets
    - ``998...`` gets a leading ``+``
    - a bare 9-digit local number gets ``+998``
    - anything else must already carry a country code (10-15 digits)
    """
    raw = (phone or "").strip()
    if not raw:
        return None
    compact = re.sub(r"[\s\-()]", "", raw)
    if not _PHONE_RE.fullmatch(compact):
        return None
    digits = compact.lstrip("+")
    if compact.startswith("+"):
        return f"+{digits}" if len(digits) >= 10 else None
    if digits.startswith(UZ_COUNTRY_CODE) and len(digits) == 12:
        return f"+{digits}"
    if len(digits) == 9:
        return f"+{UZ_COUNTRY_CODE}{digits}"
    if len(digits) >= 10:
        return f"+{digits}"
    return None


_USERNAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]{4,31}$")


def normalize_tg_username(value: str | None) -> str | None:
    """Normalize Telegram username.

    Accepts with or without leading '@'. Returns username without '@' in lower case.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    if raw.startswith("@"):
        raw = raw[1:]
    raw = raw.strip()
    if not raw:
        return None
    if not _USERNAME_RE.fullmatch(raw):
        return None
    return raw.lower()


def parse_name(value: str | None) -> tuple[str | None, str | None]:
    """Validate a display name typed into the chat: (name, error)."""
    name = " ".join((value or "").split())
    if len(name) < 2:
        return None, "❌ Iltimos, to'liq ismingizni yuboring (kamida 2 belgi)."
    if len(name) > 64:
        return None, "❌ Ism juda uzun (ko'pi bilan 64 belgi)."
    return name, None
