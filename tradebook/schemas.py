"""Pydantic request/response models for the structure ledger API."""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from tradebook.utils.dates import parse_datetime, to_iso_instant

VENUE_TYPES = ("exchange", "rfq_network", "otc_bilateral")
EXECUTION_MODES = ("CLOB", "RFQ", "Block")
LIQUIDITY_ROLES = ("maker", "taker")
OPTIONS_STRUCTURES = (
    "single_option", "vertical", "calendar", "diagonal", "butterfly",
    "iron_condor", "strangle", "straddle", "ratio", "broken_wing", "collar",
)
CONSTRUCTIONS = ("outright", "balanced", "unbalanced", "ratio", "broken_wing", "skip_strike")
EXECUTION_ROUTES = ("single", "package", "legged")
ORDER_TYPES = ("market", "limit", "pegged", "stop", "stop_limit")
SIDES = ("buy", "sell")
OPTION_TYPES = ("call", "put")
STRUCTURE_LIFECYCLES = ("open", "close")

VenueType = Literal["exchange", "rfq_network", "otc_bilateral"]
ExecutionMode = Literal["CLOB", "RFQ", "Block"]
LiquidityRole = Literal["maker", "taker"]
OptionsStructure = Literal[
    "single_option", "vertical", "calendar", "diagonal", "butterfly",
    "iron_condor", "strangle", "straddle", "ratio", "broken_wing", "collar",
]
Construction = Literal["outright", "balanced", "unbalanced", "ratio", "broken_wing", "skip_strike"]
ExecutionRoute = Literal["single", "package", "legged"]
OrderType = Literal["market", "limit", "pegged", "stop", "stop_limit"]
Side = Literal["buy", "sell"]
OptionType = Literal["call", "put"]
StructureLifecycle = Literal["open", "close"]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def _iso_datetime(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError("must be an ISO 8601 datetime")
    return to_iso_instant(parsed)


def _uuid(value: Optional[str]) -> Optional[str]:
    if value is not None and not _UUID_RE.match(value):
        raise ValueError("must be a UUID")
    return value


# ── Import bundle ─────────────────────────────────────────────────────────────

class ProgramIn(BaseModel):
    program_id: str = Field(min_length=1)
    program_name: str = Field(min_length=1)
    base_currency: str = Field(min_length=3, max_length=3)
    objective: Optional[str] = None
    sleeve: Optional[str] = None


class VenueIn(BaseModel):
    venue_id: Optional[str] = None
    type: VenueType
    name: str = Field(min_length=1)
    mic: Optional[str] = None
    underlying_exchange: Optional[str] = None
    venue_code: Optional[str] = None
    execution_mode: Optional[ExecutionMode] = None
    liquidity_role: Optional[LiquidityRole] = None
    broker: Optional[str] = None
    clearing_firm: Optional[str] = None
    account: Optional[str] = None

    @field_validator("venue_id")
    @classmethod
    def check_venue_id(cls, value):
        return _uuid(value)


class PositionIn(BaseModel):
    program_id: str = Field(min_length=1)
    underlier: str = Field(min_length=1)
    strategy_code: str = Field(min_length=1)
    strategy_name: str = Field(min_length=1)
    client_name: str = Field(min_length=1)
    options_structure: OptionsStructure
    construction: Construction
    risk_defined: bool
    lifecycle: StructureLifecycle
    entry_ts: str
    exit_ts: Optional[str] = None
    execution_route: ExecutionRoute
    order_type: Optional[OrderType] = None
    provider: Optional[str] = None
    venue_id: Optional[str] = None
    package_order_id: Optional[str] = None
    order_id: Optional[str] = None
    rfq_id: Optional[str] = None
    deal_id: Optional[str] = None
    trade_id: Optional[str] = None
    fees_total: Optional[float] = None
    fees_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    net_fill: float
    mark_at_entry: Optional[float] = None
    mark_source: Optional[str] = None
    mark_ts: Optional[str] = None
    spot: Optional[float] = None
    expected_move_pts: Optional[float] = None
    em_coverage_pct: Optional[float] = None
    multiplier: Optional[float] = None
    max_gain: Optional[float] = None
    max_loss: Optional[float] = None
    net_delta: Optional[float] = None
    counterparty: Optional[str] = None
    pricing_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notes: Optional[str] = None
    close_target_structure_id: Optional[str] = None
    linked_structure_ids: Optional[List[str]] = Field(default=None, min_length=1)

    @field_validator("entry_ts", "exit_ts", "mark_ts")
    @classmethod
    def check_timestamps(cls, value):
        return _iso_datetime(value)

    @field_validator("venue_id")
    @classmethod
    def check_venue_id(cls, value):
        return _uuid(value)

    @field_validator("linked_structure_ids")
    @classmethod
    def check_linked_ids(cls, value):
        if value is not None and any(not item.strip() for item in value):
            raise ValueError("linked structure ids must be non-empty")
        return value

    @model_validator(mode="after")
    def check_close_target(self):
        if self.lifecycle == "close" and not (self.close_target_structure_id or "").strip():
            raise ValueError("close_target_structure_id is required when lifecycle is close")
        return self


class LegIn(BaseModel):
    leg_seq: int = Field(gt=0)
    side: Side
    option_type: OptionType
    expiry: str
    strike: float = Field(gt=0)
    qty: float = Field(gt=0)
    price: float

    @field_validator("expiry")
    @classmethod
    def check_expiry(cls, value):
        if not _ISO_DATE_RE.match(value):
            raise ValueError("expiry must be YYYY-MM-DD")
        return value


class FillIn(BaseModel):
    ts: str
    qty: float = Field(gt=0)
    price: float
    leg_seq: Optional[int] = Field(default=None, gt=0)
    side: Optional[Side] = None
    liquidity_role: Optional[LiquidityRole] = None
    execution_mode: Optional[ExecutionMode] = None
    provider: Optional[str] = None
    venue_id: Optional[str] = None
    order_id: Optional[str] = None
    trade_id: Optional[str] = None
    rfq_id: Optional[str] = None
    deal_id: Optional[str] = None
    fees: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("ts")
    @classmethod
    def check_ts(cls, value):
        return _iso_datetime(value)

    @field_validator("venue_id")
    @classmethod
    def check_venue_id(cls, value):
        return _uuid(value)


class ImportPayload(BaseModel):
    program: ProgramIn
    venue: Optional[VenueIn] = None
    position: PositionIn
    legs: List[LegIn] = Field(min_length=1)
    fills: Optional[List[FillIn]] = None


# ── Request bodies ────────────────────────────────────────────────────────────

class AppendTradesRequest(BaseModel):
    rows: List[Dict[str, Any]]


class LinksUpdate(BaseModel):
    linked_structure_ids: List[str] = []
    closed_at: Optional[str] = None


class ArchiveRequest(BaseModel):
    archived_by: Optional[str] = None


class TransactionLogIn(BaseModel):
    exchange: str
    raw: Dict[str, Any]
    instrument: Optional[str] = None
    timestamp: Optional[str] = None
    trade_id: Optional[str] = None
    order_id: Optional[str] = None


class TransactionLogsRequest(BaseModel):
    entries: List[TransactionLogIn]
    created_by: Optional[str] = None


class UnprocessedRequest(BaseModel):
    rows: List[Dict[str, Any]]
    created_by: Optional[str] = None


class BackfillRequest(BaseModel):
    rows: List[Dict[str, Any]]


class DuplicateCheckRequest(BaseModel):
    rows: List[Dict[str, Any]]
    allow_allocations: bool = False


class FinalizeImportRequest(BaseModel):
    selected_rows: List[Dict[str, Any]] = []
    unprocessed_rows: List[Dict[str, Any]] = []
    created_by: Optional[str] = None
