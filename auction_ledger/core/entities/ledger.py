"""
Ledger & snapshot entities.

`UserLedger` is the working record the aggregator folds events into; the
published views (`LedgerEntry`, `SnapshotResponse`) are what the HTTP
layer serialises.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Decimals stay exact in-process and become JSON numbers at the edge
JsonDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

ZERO = Decimal(0)


class UserLedger(BaseModel):
    """Per-participant running totals, keyed by canonical lowercase address."""
    address: str
    total_deposited: Decimal = ZERO
    total_withdrawn: Decimal = ZERO
    deposit_count: int = 0
    bid_count: int = 0
    bid_prices: List[Decimal] = Field(default_factory=list)
    avg_bid_price: Decimal = ZERO
    estimated_quantity: Decimal = ZERO

    @property
    def net_balance(self) -> Decimal:
        return self.total_deposited - self.total_withdrawn

    @property
    def has_activity(self) -> bool:
        return self.total_deposited > 0 or self.bid_count > 0

    def to_entry(self) -> "LedgerEntry":
        return LedgerEntry(
            address=self.address,
            totalDeposited=self.total_deposited,
            totalWithdrawn=self.total_withdrawn,
            netBalance=self.net_balance,
            depositCount=self.deposit_count,
            bidCount=self.bid_count,
            avgBidPrice=self.avg_bid_price,
            estimatedQuantity=self.estimated_quantity,
        )


class LedgerEntry(BaseModel):
    """Published, read-only view of one participant."""
    model_config = ConfigDict(frozen=True)

    address: str
    totalDeposited: JsonDecimal
    totalWithdrawn: JsonDecimal
    netBalance: JsonDecimal
    depositCount: int
    bidCount: int
    avgBidPrice: JsonDecimal
    estimatedQuantity: JsonDecimal


class SummaryTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    totalDeposited: JsonDecimal = ZERO
    totalWithdrawn: JsonDecimal = ZERO
    totalValueLocked: JsonDecimal = ZERO  # sum of published net balances
    totalBids: int = 0  # raw, unfiltered
    canceledBids: int = 0  # raw, unfiltered
    activeBids: int = 0
    participantCount: int = 0


class LiveBid(BaseModel):
    model_config = ConfigDict(frozen=True)

    txHash: str
    bidder: str
    price: JsonDecimal
    timestampMs: int


class AttributionAnomaly(BaseModel):
    """A ledger excluded from publication because its net balance went negative."""
    model_config = ConfigDict(frozen=True)

    address: str
    totalDeposited: JsonDecimal
    totalWithdrawn: JsonDecimal
    netBalance: JsonDecimal


class StreamStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    entries: int
    pages: int
    skipped: int = 0
    truncated: bool = False
    error: Optional[str] = None


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    STALE = "stale"


class Snapshot(BaseModel):
    """One complete aggregation result. Replaced as a whole, never edited."""
    model_config = ConfigDict(frozen=True)

    ledgers: Tuple[LedgerEntry, ...] = ()
    summary: SummaryTotals = SummaryTotals()
    recent_bids: Tuple[LiveBid, ...] = ()
    anomalies: Tuple[AttributionAnomaly, ...] = ()
    streams: Tuple[StreamStats, ...] = ()
    warnings: Tuple[str, ...] = ()
    partial: bool = False
    captured_at: datetime

    def to_response(self, status: CacheStatus, age_seconds: float) -> "SnapshotResponse":
        return SnapshotResponse(
            ledgers=list(self.ledgers),
            summary=self.summary,
            recentBids=list(self.recent_bids),
            cacheStatus=status,
            capturedAt=self.captured_at,
            ageSeconds=round(age_seconds, 3),
            partial=self.partial,
            warnings=list(self.warnings),
        )


class SnapshotResponse(BaseModel):
    """What `GetSnapshot()` returns to the presentation layer."""
    ledgers: List[LedgerEntry]
    summary: SummaryTotals
    recentBids: List[LiveBid] = Field(default_factory=list)
    cacheStatus: CacheStatus
    capturedAt: datetime
    ageSeconds: float = 0.0
    partial: bool = False
    warnings: List[str] = Field(default_factory=list)


class DiagnosticsResponse(BaseModel):
    capturedAt: datetime
    partial: bool
    warnings: List[str]
    anomalies: List[AttributionAnomaly]
    streams: List[StreamStats]
