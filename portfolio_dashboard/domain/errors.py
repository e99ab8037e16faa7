"""
Domain errors for quote fetching, valuation and aggregation.
"""

from typing import Optional, Sequence


class PortfolioError(Exception):
    """Base class for portfolio engine errors."""


class SymbolFetchFailure(PortfolioError):
    """A single symbol could not be quoted. Recovered by skipping the holding."""

    def __init__(self, symbol: str, reason: str, timed_out: bool = False):
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason
        self.timed_out = timed_out


class TotalFetchFailure(PortfolioError):
    """Every symbol failed in a refresh pass."""

    def __init__(self, symbols: Sequence[str], reasons: Optional[dict] = None):
        super().__init__(f"All {len(symbols)} quote fetches failed")
        self.symbols = list(symbols)
        self.reasons = dict(reasons or {})


class DegenerateAggregationFailure(PortfolioError):
    """Aggregation could not produce a valid snapshot."""


class MalformedHoldingFailure(PortfolioError, ValueError):
    """Static portfolio definition is invalid. Raised at load time."""
