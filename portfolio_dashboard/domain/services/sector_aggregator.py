"""
Sector aggregation over valued holdings.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from portfolio_dashboard.domain.models import SectorAllocation, SectorTotals, ValuedHolding
from portfolio_dashboard.domain.services.holding_valuator import ZERO, percent_of

DEFAULT_SECTOR_COLOR = "#9ca3af"


class SectorAggregator:
    """
    Groups valued holdings by sector label and sums their totals.
    """

    def aggregate(
        self,
        valued_holdings: Iterable[ValuedHolding],
        declared_sectors: Sequence[str] = (),
    ) -> Dict[str, SectorTotals]:
        """
        Sum investment, present value and gain/loss per sector.

        Sectors are matched by exact (case-sensitive) name. Declared sectors
        without holdings are returned with zero totals. Output order is the
        declared order followed by any other sectors in first-seen order.
        """
        grouped = defaultdict(lambda: {"investment": ZERO, "present_value": ZERO, "gain_loss": ZERO, "count": 0})
        order: List[str] = list(dict.fromkeys(declared_sectors))

        for valued in valued_holdings:
            sector = valued.sector
            if sector not in order:
                order.append(sector)
            bucket = grouped[sector]
            bucket["investment"] += valued.investment
            bucket["present_value"] += valued.present_value
            bucket["gain_loss"] += valued.gain_loss
            bucket["count"] += 1

        totals: Dict[str, SectorTotals] = {}
        for sector in order:
            bucket = grouped.get(sector)
            if bucket is None:
                totals[sector] = SectorTotals(sector=sector)
                continue
            totals[sector] = SectorTotals(
                sector=sector,
                investment=bucket["investment"],
                present_value=bucket["present_value"],
                gain_loss=bucket["gain_loss"],
                holdings_count=bucket["count"],
            )
        return totals

    def allocation(
        self,
        sector_totals: Mapping[str, SectorTotals],
        colors: Optional[Mapping[str, str]] = None,
    ) -> List[SectorAllocation]:
        """
        Share of the portfolio present value held in each sector, in percent.
        """
        colors = colors or {}
        portfolio_value = sum((t.present_value for t in sector_totals.values()), ZERO)
        return [
            SectorAllocation(
                name=name,
                value=percent_of(totals.present_value, portfolio_value),
                color=colors.get(name, DEFAULT_SECTOR_COLOR),
            )
            for name, totals in sector_totals.items()
        ]


def sum_sector_field(sector_totals: Mapping[str, SectorTotals], field: str) -> Decimal:
    return sum((getattr(t, field) for t in sector_totals.values()), ZERO)
