import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, Optional

from portfolio_dashboard.domain.errors import SymbolFetchFailure
from portfolio_dashboard.domain.models import HoldingStatic, Quote

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


def make_holding(symbol="INFY:NSE", sector="Technology", purchase_price="1400", quantity=10, name=None):
    return HoldingStatic(
        symbol=symbol,
        name=name or symbol.split(":")[0].title(),
        exchange="NSE",
        sector=sector,
        purchase_price=Decimal(str(purchase_price)),
        quantity=quantity,
    )


def make_quote(symbol="INFY:NSE", price="1580.50", pe_ratio=None, earnings=None, source="stub"):
    return Quote(
        symbol=symbol,
        price=Decimal(str(price)),
        fetched_at=datetime(2026, 2, 7, 9, 15, tzinfo=timezone.utc),
        pe_ratio=Decimal(str(pe_ratio)) if pe_ratio is not None else None,
        earnings=earnings,
        source=source,
    )


class StubQuoteSource:
    """Quote source with fixed prices, scripted failures and an optional gate."""

    def __init__(
        self,
        prices: Dict[str, str],
        failing: Iterable[str] = (),
        hanging: Iterable[str] = (),
    ):
        self.prices = dict(prices)
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.gate: Optional[asyncio.Event] = None
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_quote(self, symbol: str, timeout: float) -> Quote:
        self.calls.append(symbol)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if symbol in self.hanging:
                await asyncio.sleep(3600)
            if symbol in self.failing or symbol not in self.prices:
                raise SymbolFetchFailure(symbol, "stub failure")
            return make_quote(symbol, self.prices[symbol])
        finally:
            self.in_flight -= 1


class ManualClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 2, 7, 9, 15, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)
