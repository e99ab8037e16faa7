"""
PORTFOLIO AGGREGATOR
Reduce valued holdings to portfolio-wide totals

RESPONSIBILITIES:
- Sum investment and present value across valued holdings
- Reconcile with the sector breakdown
- Append to the bounded performance series
- Build the immutable PortfolioSnapshot

RULES:
❌ A pass with only skipped holdings is not a zero-value portfolio
✅ Sector totals must reconcile exactly with portfolio totals
✅ Deterministic given the same inputs
"""

import logging
from collections import deque
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from portfolio_dashboard.domain.errors import DegenerateAggregationFailure
from portfolio_dashboard.domain.models import (
    PerformancePoint,
    PortfolioSnapshot,
    SectorAllocation,
    SectorTotals,
    ValuedHolding,
)
from portfolio_dashboard.domain.services.holding_valuator import ZERO, percent_of
from portfolio_dashboard.domain.services.sector_aggregator import sum_sector_field
from portfolio_dashboard.utils.time import now_local, period_label

logger = logging.getLogger(__name__)

DEFAULT_SERIES_LENGTH = 30


class PortfolioAggregator:
    """
    Portfolio Aggregator
    Builds one PortfolioSnapshot per refresh pass
    """

    def __init__(self, max_series_length: int = DEFAULT_SERIES_LENGTH):
        if max_series_length < 1:
            raise ValueError("max_series_length must be at least 1")
        self.max_series_length = max_series_length

    def aggregate(
        self,
        valued_holdings: Sequence[ValuedHolding],
        sector_totals: Mapping[str, SectorTotals],
        previous_series: Iterable[PerformancePoint] = (),
        *,
        skipped: Sequence[str] = (),
        sectors: Sequence[SectorAllocation] = (),
        timestamp: Optional[datetime] = None,
        label: Optional[str] = None,
    ) -> PortfolioSnapshot:
        """
        Reduce valued holdings to a snapshot.

        Args:
            valued_holdings: Holdings valued in this pass
            sector_totals: Sector breakdown of the same holdings
            previous_series: Performance series of the previous snapshot
            skipped: Symbols skipped in this pass
            sectors: Sector allocation for display
            timestamp: Pass time (defaults to now)
            label: Performance point label (defaults to the pass time)

        Raises:
            DegenerateAggregationFailure: every holding was skipped, or the
                sector breakdown does not reconcile with the totals
        """
        if not valued_holdings and skipped:
            raise DegenerateAggregationFailure(
                f"No valid holdings: all {len(skipped)} holdings were skipped"
            )

        total_investment = sum((h.investment for h in valued_holdings), ZERO)
        present_value = sum((h.present_value for h in valued_holdings), ZERO)
        total_gain = present_value - total_investment

        self._reconcile(sector_totals, total_investment, present_value)

        timestamp = timestamp or now_local()
        series = deque(previous_series, maxlen=self.max_series_length)
        series.append(
            PerformancePoint(
                label=label if label is not None else period_label(timestamp),
                value=present_value,
            )
        )

        return PortfolioSnapshot(
            total_investment=total_investment,
            present_value=present_value,
            total_gain=total_gain,
            gain_percentage=percent_of(total_gain, total_investment),
            timestamp=timestamp,
            holdings=tuple(valued_holdings),
            sector_totals=sector_totals,
            sectors=tuple(sectors),
            performance=tuple(series),
            skipped=tuple(skipped),
        )

    @staticmethod
    def _reconcile(sector_totals, total_investment, present_value) -> None:
        sector_investment = sum_sector_field(sector_totals, "investment")
        sector_value = sum_sector_field(sector_totals, "present_value")
        if sector_investment != total_investment or sector_value != present_value:
            logger.error(
                "Sector totals do not reconcile | investment %s vs %s, value %s vs %s",
                sector_investment,
                total_investment,
                sector_value,
                present_value,
            )
            raise DegenerateAggregationFailure("Sector totals do not reconcile with portfolio totals")
