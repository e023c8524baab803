"""
Option instrument symbol parsing, one parser per exchange.

Deribit:   BTC-27DEC24-100000-C     (day without zero pad)
Coincall:  BTCUSD-27DEC24-100000-C  (quote currency glued to the base)
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

MONTHS = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]
_MONTH_INDEX = {name: i + 1 for i, name in enumerate(MONTHS)}

SUPPORTED_EXCHANGES = ("deribit", "coincall")
DEFAULT_EXCHANGE = "deribit"

_DERIBIT_RE = re.compile(r"^([A-Z]+)-(\d{1,2})([A-Z]{3})(\d{2})-(\d+)-(C|P)$", re.IGNORECASE)
_COINCALL_RE = re.compile(
    r"^([A-Z]+?)(?:USDT|USDC|USD)?-(\d{1,2})([A-Z]{3})(\d{2})-(\d+(?:\.\d+)?)-(C|P)$", re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedInstrument:
    underlying: str
    expiry: str  # YYYY-MM-DD
    strike: float
    option_type: str  # "C" or "P"


def _build(match) -> Optional[ParsedInstrument]:
    underlying, day, month_text, year, strike, option = match.groups()
    month = _MONTH_INDEX.get(month_text.upper())
    if month is None:
        return None
    try:
        expiry = date(2000 + int(year), month, int(day))
    except ValueError:
        return None
    return ParsedInstrument(
        underlying=underlying.upper(),
        expiry=expiry.isoformat(),
        strike=float(strike),
        option_type=option.upper(),
    )


def parse_instrument(symbol: Optional[str]) -> Optional[ParsedInstrument]:
    """Parse a Deribit-style option name, or None if it isn't one."""
    if not symbol:
        return None
    match = _DERIBIT_RE.match(symbol.strip())
    return _build(match) if match else None


def parse_coincall_symbol(symbol: Optional[str]) -> Optional[ParsedInstrument]:
    """Parse a Coincall option symbol; plain Deribit-style names are accepted too."""
    if not symbol:
        return None
    match = _COINCALL_RE.match(symbol.strip())
    if match:
        return _build(match)
    return parse_instrument(symbol)


_PARSERS = {
    "deribit": parse_instrument,
    "coincall": parse_coincall_symbol,
}


def normalize_exchange(exchange: Optional[str]) -> str:
    if not exchange:
        return DEFAULT_EXCHANGE
    return str(exchange).strip().lower() or DEFAULT_EXCHANGE


def parse_instrument_by_exchange(exchange: Optional[str], symbol: Optional[str]) -> Optional[ParsedInstrument]:
    """Dispatch to the exchange's parser; unknown exchanges use the Deribit form."""
    parser = _PARSERS.get(normalize_exchange(exchange), parse_instrument)
    return parser(symbol)
