from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from portfolio_dashboard.domain.models import (
    PortfolioSnapshot,
    RefreshStatus,
    SectorAllocation,
    SectorTotals,
    ValuedHolding,
)


class ValuedHoldingSchema(BaseModel):
    symbol: str
    name: str
    exchange: str
    sector: str
    purchase_price: float
    quantity: int
    current_price: float
    investment: float
    present_value: float
    gain_loss: float
    percentage: float
    pe_ratio: Optional[float] = None
    earnings: Optional[str] = None
    source: str = ""

    @classmethod
    def from_domain(cls, valued: ValuedHolding) -> "ValuedHoldingSchema":
        holding, quote = valued.holding, valued.quote
        return cls(
            symbol=holding.symbol,
            name=holding.name,
            exchange=holding.exchange,
            sector=holding.sector,
            purchase_price=float(holding.purchase_price),
            quantity=holding.quantity,
            current_price=float(quote.price),
            investment=float(valued.investment),
            present_value=float(valued.present_value),
            gain_loss=float(valued.gain_loss),
            percentage=float(valued.percentage),
            pe_ratio=float(quote.pe_ratio) if quote.pe_ratio is not None else None,
            earnings=quote.earnings,
            source=quote.source,
        )


class SectorTotalsSchema(BaseModel):
    investment: float
    present_value: float
    gain_loss: float
    holdings_count: int

    @classmethod
    def from_domain(cls, totals: SectorTotals) -> "SectorTotalsSchema":
        return cls(
            investment=float(totals.investment),
            present_value=float(totals.present_value),
            gain_loss=float(totals.gain_loss),
            holdings_count=totals.holdings_count,
        )


class SectorAllocationSchema(BaseModel):
    name: str
    value: float
    color: str

    @classmethod
    def from_domain(cls, allocation: SectorAllocation) -> "SectorAllocationSchema":
        return cls(name=allocation.name, value=float(allocation.value), color=allocation.color)


class PerformancePointSchema(BaseModel):
    name: str
    value: float


class PortfolioSnapshotSchema(BaseModel):
    total_investment: float
    present_value: float
    total_gain: float
    gain_percentage: float
    last_updated: datetime
    sectors: List[SectorAllocationSchema]
    sector_totals: Dict[str, SectorTotalsSchema]
    performance_data: List[PerformancePointSchema]
    holdings: List[ValuedHoldingSchema]
    skipped: List[str]

    @classmethod
    def from_domain(cls, snapshot: PortfolioSnapshot) -> "PortfolioSnapshotSchema":
        return cls(
            total_investment=float(snapshot.total_investment),
            present_value=float(snapshot.present_value),
            total_gain=float(snapshot.total_gain),
            gain_percentage=float(snapshot.gain_percentage),
            last_updated=snapshot.timestamp,
            sectors=[SectorAllocationSchema.from_domain(s) for s in snapshot.sectors],
            sector_totals={
                name: SectorTotalsSchema.from_domain(t) for name, t in snapshot.sector_totals.items()
            },
            performance_data=[
                PerformancePointSchema(name=p.label, value=float(p.value)) for p in snapshot.performance
            ],
            holdings=[ValuedHoldingSchema.from_domain(h) for h in snapshot.holdings],
            skipped=list(snapshot.skipped),
        )


class RefreshStatusSchema(BaseModel):
    state: str
    last_success_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    staleness_seconds: Optional[float] = None
    is_stale: bool
    message: str
    last_error: Optional[str] = None
    skipped: List[str] = []

    @classmethod
    def from_domain(cls, status: RefreshStatus) -> "RefreshStatusSchema":
        return cls(
            state=status.state.value,
            last_success_at=status.last_success_at,
            last_attempt_at=status.last_attempt_at,
            staleness_seconds=status.staleness_seconds,
            is_stale=status.is_stale,
            message=status.message,
            last_error=status.last_error,
            skipped=list(status.skipped),
        )
