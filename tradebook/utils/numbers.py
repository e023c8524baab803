"""Number coercion helpers for loosely-typed export rows."""

import math
from typing import Any, Optional


def to_numeric(value: Any) -> Optional[float]:
    """Strict coercion: a finite number or a numeric string, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def to_number(value: Any) -> float:
    """Lenient coercion for CSV cells; returns 0.0 for anything unparseable.

    A comma with no dot is read as a decimal comma ("1.234,5" style exports
    without the thousands dot), otherwise commas are thousands separators.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else 0.0

    text = str(value if value is not None else "").strip()
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    else:
        text = text.replace(",", "")

    number = to_numeric(text)
    return number if number is not None else 0.0


def format_number(value: float) -> str:
    """Render integral floats without a trailing '.0'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
