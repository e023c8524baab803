"""
Compact text labels for a structure, e.g.

    header: "BTC 27DEC24 CAL x2"
    legs:   "-C100 / +C110"

Pure formatting over StructureView; nothing here touches the database.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from tradebook.positions.structures import LegView, StructureView
from tradebook.utils.dates import parse_datetime
from tradebook.venues.instruments import MONTHS

_PLACEHOLDER = "—"


@dataclass(frozen=True)
class SummaryLines:
    header: str
    legs: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed or trimmed == _PLACEHOLDER:
        return None
    return trimmed


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    text = _clean(value)
    if text is None:
        return None
    if len(text) == 10:
        try:
            day = date.fromisoformat(text)
        except ValueError:
            return None
        return parse_datetime(day)
    return parse_datetime(text)


def _expiry_sort_key(value: Optional[str]) -> float:
    parsed = _parse_expiry(value)
    return parsed.timestamp() if parsed else math.inf


def format_expiry_token(value: Optional[str]) -> Optional[str]:
    """'2024-12-07' -> '07DEC24'; unparseable text is upper-cased as-is."""
    text = _clean(value)
    if text is None:
        return None
    parsed = _parse_expiry(text)
    if parsed is None:
        return text.upper()
    return f"{parsed.day:02d}{MONTHS[parsed.month - 1]}{str(parsed.year)[-2:]}"


def _trim_decimal(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_compact_strike(strike: Optional[float]) -> Optional[str]:
    """Strike in thousands: 100000 -> '100', 2250 -> '2.25'."""
    if strike is None or not math.isfinite(strike):
        return None
    base = strike / 1000
    if float(base).is_integer():
        return str(int(base))
    return _trim_decimal(f"{base:.3f}")


def build_leg_summary(legs: List[LegView], fallback_expiry: Optional[str] = None) -> str:
    tokens = []
    for leg in legs:
        if not leg.qty_net or not math.isfinite(leg.qty_net):
            continue
        strike_text = format_compact_strike(leg.strike)
        if strike_text is None:
            continue
        sign = "+" if leg.qty_net > 0 else "-"
        option = "P" if (leg.option_type or "").upper().startswith("P") else "C"
        token = f"{sign}{option}{strike_text}"
        sort_key = (
            _expiry_sort_key(leg.expiry or fallback_expiry),
            leg.strike,
            0 if option == "P" else 1,
            token,
        )
        tokens.append((sort_key, token))

    tokens.sort(key=lambda item: item[0])
    return " / ".join(token for _, token in tokens)


def derive_leg_size_token(legs: List[LegView]) -> Optional[str]:
    for leg in legs:
        qty = abs(leg.qty_net or 0)
        if not qty or not math.isfinite(qty):
            continue
        if float(qty).is_integer():
            return f"x{int(qty)}"
        return f"x{_trim_decimal(f'{qty:.2f}')}"
    return None


def collect_expiry_tokens(structure: StructureView) -> List[str]:
    candidates = [leg.expiry for leg in structure.legs if _clean(leg.expiry)]
    if not candidates and _clean(structure.expiry):
        candidates.append(structure.expiry)

    unique = {}
    for expiry in candidates:
        token = format_expiry_token(expiry)
        if token is None:
            continue
        sort_key = _expiry_sort_key(expiry)
        if token not in unique or (unique[token] == math.inf and sort_key != math.inf):
            unique[token] = sort_key

    return [token for token, _ in sorted(unique.items(), key=lambda item: (item[1], item[0].lower()))]


def _squash(text: str) -> str:
    return " ".join(text.split())


def build_structure_summary_lines(structure: StructureView) -> Optional[SummaryLines]:
    """Two-line label: header (underlying, expiries, code, size) + leg tokens."""
    underlying = (structure.underlying or "").upper().strip()
    expiry_tokens = collect_expiry_tokens(structure)
    code = (structure.strategy_code or "").upper().strip()
    size_token = derive_leg_size_token(structure.legs)
    legs_summary = _squash(build_leg_summary(structure.legs, structure.expiry))

    header = " ".join(part for part in (underlying, " / ".join(expiry_tokens)) if part)
    if len(expiry_tokens) > 1 and code:
        header = f"{header} -- {code} --" if header else f"-- {code} --"
    else:
        header = " ".join(part for part in (header, code) if part)
    if size_token:
        header = f"{header} {size_token}" if header else size_token

    header = _squash(header)
    if not header and not legs_summary:
        return None
    if not header:
        return SummaryLines(header=legs_summary, legs=None)
    return SummaryLines(header=header, legs=legs_summary or None)


def build_structure_chip_summary(structure: StructureView) -> Optional[str]:
    """Single-line label: 'BTC 27DEC24 CAL x2 : -C100 / +C110'."""
    underlying = (structure.underlying or "").upper().strip()
    expiry_token = format_expiry_token(structure.expiry) or (structure.expiry or "").strip()
    code = (structure.strategy_code or "").upper().strip()
    size_token = derive_leg_size_token(structure.legs)
    legs_summary = build_leg_summary(structure.legs, structure.expiry)

    leading = " ".join(part for part in (underlying, expiry_token, code) if part)
    with_size = f"{leading} {size_token}".strip() if size_token else leading
    if with_size:
        line = f"{with_size} : {legs_summary}" if legs_summary else with_size
    else:
        line = legs_summary

    normalized = _squash(line or underlying or "")
    return normalized or None
