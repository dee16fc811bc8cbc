"""Resolve exported timestamp strings into absolute UTC datetimes."""

import re
from datetime import datetime, timezone
from typing import Optional

# Anything at or before this year is treated as a misparse for heuristic
# formats (two-digit years, epoch numbers that are really counters).
MIN_PLAUSIBLE_YEAR = 2001

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_EPOCH = re.compile(r"^\d{9,13}(?:\.\d+)?$")
_MERIDIEM = re.compile(r"\b([AaPp])\.?\s?[Mm]\.?(?=\s|$)")
_WHITESPACE = re.compile(r"\s+")

# Tried in order after commas and the iMessage " at " are removed.
LOCALE_FORMATS: tuple[str, ...] = (
    # WhatsApp US, 12h
    "%m/%d/%y %I:%M:%S %p",
    "%m/%d/%y %I:%M %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    # WhatsApp US, 24h
    "%m/%d/%y %H:%M:%S",
    "%m/%d/%y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    # Day-first exports where the US reading is impossible
    "%d/%m/%y %H:%M:%S",
    "%d/%m/%y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y %I:%M %p",
    # European dotted
    "%d.%m.%y %H:%M:%S",
    "%d.%m.%y %H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    # iMessage and full month names
    "%b %d %Y %I:%M %p",
    "%b %d %Y %I:%M:%S %p",
    "%B %d %Y %I:%M %p",
    "%B %d %Y %I:%M:%S %p",
    "%b %d %Y %H:%M",
    "%B %d %Y %H:%M",
    # Generic
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize(value: str) -> str:
    text = value.replace("\u202f", " ").replace("\u00a0", " ")
    text = text.replace(",", " ").replace(" at ", " ")
    text = _MERIDIEM.sub(lambda m: f"{m.group(1).upper()}M", text)
    return _WHITESPACE.sub(" ", text).strip()


def _parse_iso(value: str) -> Optional[datetime]:
    if not _ISO_PREFIX.match(value):
        return None
    candidate = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        return _as_utc(datetime.fromisoformat(candidate))
    except ValueError:
        return None


def _parse_epoch(value: str) -> Optional[datetime]:
    if not _EPOCH.match(value):
        return None
    number = float(value)
    # Millisecond epochs have 13 digits
    if number > 1e11:
        number /= 1000.0
    try:
        resolved = datetime.fromtimestamp(number, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return resolved if resolved.year >= MIN_PLAUSIBLE_YEAR else None


def _parse_locale(value: str) -> Optional[datetime]:
    text = _normalize(value)
    for fmt in LOCALE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.year < MIN_PLAUSIBLE_YEAR:
            continue
        return parsed.replace(tzinfo=timezone.utc)
    return None


def resolve_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Turn a raw timestamp string into a timezone-aware UTC datetime.

    Tries ISO-8601 first, then numeric epoch seconds or milliseconds, then
    the locale patterns chat exporters use. Naive values are taken as UTC.

    Args:
        value: Timestamp text exactly as it appeared in the export.

    Returns:
        Resolved datetime, or None if no format matches.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    return _parse_iso(text) or _parse_epoch(text) or _parse_locale(text)
