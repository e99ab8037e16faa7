# portfolio_dashboard/services/portfolio_service.py

import logging
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from portfolio_dashboard.domain.models import (
    FetchFailure,
    PerformancePoint,
    PortfolioSnapshot,
    Quote,
    SkippedHolding,
    ValuedHolding,
)
from portfolio_dashboard.domain.services.config_engine import PortfolioDefinition
from portfolio_dashboard.domain.services.holding_valuator import HoldingValuator
from portfolio_dashboard.domain.services.portfolio_aggregator import PortfolioAggregator
from portfolio_dashboard.domain.services.sector_aggregator import SectorAggregator

logger = logging.getLogger(__name__)

QuoteResult = Union[Quote, FetchFailure]


class PortfolioService:
    """
    Runs the valuation pipeline for one pass:
    quotes -> valued holdings -> sector totals -> snapshot.
    """

    def __init__(
        self,
        definition: PortfolioDefinition,
        valuator: Optional[HoldingValuator] = None,
        sector_aggregator: Optional[SectorAggregator] = None,
        portfolio_aggregator: Optional[PortfolioAggregator] = None,
    ):
        self.definition = definition
        self.valuator = valuator or HoldingValuator()
        self.sector_aggregator = sector_aggregator or SectorAggregator()
        self.portfolio_aggregator = portfolio_aggregator or PortfolioAggregator()

    def value_holdings(
        self, results: Mapping[str, QuoteResult]
    ) -> Tuple[List[ValuedHolding], List[SkippedHolding]]:
        valued: List[ValuedHolding] = []
        skipped: List[SkippedHolding] = []

        for holding in self.definition.holdings:
            result = results.get(holding.symbol)
            if result is None:
                result = FetchFailure(symbol=holding.symbol, reason="no quote result")
            outcome = self.valuator.value(holding, result)
            if isinstance(outcome, SkippedHolding):
                logger.warning("Live price missing for %s: %s", holding.symbol, outcome.reason)
                skipped.append(outcome)
            else:
                valued.append(outcome)

        return valued, skipped

    def build_snapshot(
        self,
        valued: List[ValuedHolding],
        skipped: List[SkippedHolding],
        previous_series: Iterable[PerformancePoint] = (),
        timestamp: Optional[datetime] = None,
    ) -> PortfolioSnapshot:
        """
        Raises:
            DegenerateAggregationFailure: no holding could be valued
        """
        sector_totals = self.sector_aggregator.aggregate(valued, self.definition.sectors)
        sectors = self.sector_aggregator.allocation(sector_totals, self.definition.sector_colors)

        snapshot = self.portfolio_aggregator.aggregate(
            valued,
            sector_totals,
            previous_series,
            skipped=[s.symbol for s in skipped],
            sectors=sectors,
            timestamp=timestamp,
        )

        logger.info(
            "✅ Portfolio snapshot ready | invested=%.2f value=%.2f pnl=%.2f (%d valued, %d skipped)",
            snapshot.total_investment,
            snapshot.present_value,
            snapshot.total_gain,
            len(valued),
            len(skipped),
        )
        return snapshot
