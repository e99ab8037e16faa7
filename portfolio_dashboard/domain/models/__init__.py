"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    RefreshState,

    # Entities
    FetchFailure,
    HoldingStatic,
    PerformancePoint,
    PortfolioSnapshot,
    Quote,
    RefreshStatus,
    SectorAllocation,
    SectorTotals,
    SkippedHolding,
    ValuedHolding,
)

__all__ = [
    # Enums
    "RefreshState",

    # Entities
    "FetchFailure",
    "HoldingStatic",
    "PerformancePoint",
    "PortfolioSnapshot",
    "Quote",
    "RefreshStatus",
    "SectorAllocation",
    "SectorTotals",
    "SkippedHolding",
    "ValuedHolding",
]
