"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


class RefreshState(str, Enum):
    """Refresh pass state"""
    IDLE = "IDLE"
    FETCHING = "FETCHING"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    AGGREGATING = "AGGREGATING"
    COMMITTED = "COMMITTED"
    TOTAL_FAILURE = "TOTAL_FAILURE"


@dataclass(frozen=True)
class HoldingStatic:
    """Instrument position as defined in the portfolio configuration"""
    symbol: str
    name: str
    exchange: str
    sector: str
    purchase_price: Decimal
    quantity: int
    purchase_date: Optional[date] = None


@dataclass(frozen=True)
class Quote:
    """Point-in-time market reading for one symbol"""
    symbol: str
    price: Decimal
    fetched_at: datetime
    pe_ratio: Optional[Decimal] = None
    earnings: Optional[str] = None
    source: str = ""


@dataclass(frozen=True)
class FetchFailure:
    """Per-symbol fetch failure carried into valuation"""
    symbol: str
    reason: str
    timed_out: bool = False


@dataclass(frozen=True)
class ValuedHolding:
    """Holding valued against a fresh quote"""
    holding: HoldingStatic
    quote: Quote
    investment: Decimal
    present_value: Decimal
    gain_loss: Decimal
    percentage: Decimal

    @property
    def symbol(self) -> str:
        return self.holding.symbol

    @property
    def sector(self) -> str:
        return self.holding.sector

    @property
    def current_price(self) -> Decimal:
        return self.quote.price


@dataclass(frozen=True)
class SkippedHolding:
    """Holding excluded from a pass because no usable quote was available"""
    holding: HoldingStatic
    reason: str

    @property
    def symbol(self) -> str:
        return self.holding.symbol


@dataclass(frozen=True)
class SectorTotals:
    """Summed values for all valued holdings in one sector"""
    sector: str
    investment: Decimal = Decimal("0.00")
    present_value: Decimal = Decimal("0.00")
    gain_loss: Decimal = Decimal("0.00")
    holdings_count: int = 0


@dataclass(frozen=True)
class SectorAllocation:
    """Sector share of the portfolio present value, in percent"""
    name: str
    value: Decimal
    color: str


@dataclass(frozen=True)
class PerformancePoint:
    label: str
    value: Decimal


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Complete valuation of the portfolio for one refresh pass.
    """
    total_investment: Decimal
    present_value: Decimal
    total_gain: Decimal
    gain_percentage: Decimal
    timestamp: datetime
    holdings: Tuple[ValuedHolding, ...]
    sector_totals: Mapping[str, SectorTotals]
    sectors: Tuple[SectorAllocation, ...] = ()
    performance: Tuple[PerformancePoint, ...] = ()
    skipped: Tuple[str, ...] = ()

    def __post_init__(self):
        # Freeze containers so consumers never hold a mutable handle
        object.__setattr__(self, "holdings", tuple(self.holdings))
        object.__setattr__(self, "sector_totals", MappingProxyType(dict(self.sector_totals)))
        object.__setattr__(self, "sectors", tuple(self.sectors))
        object.__setattr__(self, "performance", tuple(self.performance))
        object.__setattr__(self, "skipped", tuple(self.skipped))


@dataclass(frozen=True)
class RefreshStatus:
    """Freshness of the published snapshot"""
    state: RefreshState
    last_success_at: Optional[datetime]
    last_attempt_at: Optional[datetime]
    staleness_seconds: Optional[float]
    is_stale: bool
    message: str
    last_error: Optional[str] = None
    skipped: Tuple[str, ...] = field(default_factory=tuple)
