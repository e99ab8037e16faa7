"""
Quote source protocol for type hints.
"""

from __future__ import annotations

from typing import Protocol

from portfolio_dashboard.domain.models import Quote


class QuoteSource(Protocol):
    async def fetch_quote(self, symbol: str, timeout: float) -> Quote:
        """
        Fetch the latest quote for a symbol.

        Raises:
            SymbolFetchFailure: the source could not produce a usable price
        """
        ...
