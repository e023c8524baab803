"""Date/time parsing helpers shared by the import and structure code."""

import re
from datetime import date, datetime, timezone
from typing import Optional, Union

_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")

# Layouts seen in exchange CSV exports that fromisoformat() rejects
_FALLBACK_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%d.%m.%Y %H:%M:%S",
    "%d %b %Y %H:%M:%S",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%d %b %Y",
    "%d%b%y",
)


def parse_datetime(value: Union[str, int, float, datetime, date, None]) -> Optional[datetime]:
    """Parse a timestamp into an aware UTC datetime.

    Naive values are taken as UTC.  Numbers are epoch seconds, or epoch
    milliseconds when large enough to be one.  Returns None when the value
    can't be parsed.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        dt = _parse_text(text)
        if dt is None:
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_text(text: str) -> Optional[datetime]:
    candidate = text.replace("Z", "+00:00").replace("z", "+00:00")
    if " " in candidate and "T" not in candidate and _DATE_PREFIX_RE.match(candidate):
        candidate = candidate.replace(" ", "T", 1)
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        pass

    if text.isdigit() and len(text) >= 9:
        return parse_datetime(int(text))

    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_iso_instant(dt: datetime) -> str:
    """Format as an ISO-8601 UTC instant with a trailing 'Z'.

    Milliseconds are included only when the value has a sub-second part.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    text = dt.strftime("%Y-%m-%dT%H:%M:%S")
    if dt.microsecond:
        text += f".{dt.microsecond // 1000:03d}"
    return text + "Z"


def now_iso() -> str:
    return to_iso_instant(datetime.now(timezone.utc))


def normalize_date_only(value) -> Optional[str]:
    """Return YYYY-MM-DD for a date-ish value, or None.

    A string that already starts with a YYYY-MM-DD prefix is cut to that
    prefix without further parsing.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return parse_datetime(value).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None

    match = _DATE_PREFIX_RE.match(text)
    if match:
        return match.group(1)

    parsed = parse_datetime(text)
    if parsed is None:
        return None
    return parsed.date().isoformat()
