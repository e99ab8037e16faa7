"""
Provider chain - try primary, then fallbacks.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from portfolio_dashboard.domain.errors import SymbolFetchFailure
from portfolio_dashboard.domain.models import Quote
from portfolio_dashboard.infrastructure.market_data.types import QuoteSource

logger = logging.getLogger(__name__)

# Part of the remaining deadline held back from the fundamentals call
ENRICH_MARGIN_RATIO = 0.1
ENRICH_MIN_MARGIN_SECONDS = 0.01


@dataclass(frozen=True)
class NamedProvider:
    name: str
    provider: QuoteSource


class TrackedQuoteSource:
    def __init__(self, provider: QuoteSource, name: str):
        self.provider = provider
        self.name = name
        self.last_price_sources: Dict[str, str] = {}

    def get_last_sources(self) -> Dict[str, str]:
        return dict(self.last_price_sources)

    async def fetch_quote(self, symbol: str, timeout: float) -> Quote:
        quote = await self.provider.fetch_quote(symbol, timeout)
        self.last_price_sources[symbol] = self.name
        return quote


class ChainedQuoteSource:
    """
    Price from the first provider that answers; P/E and earnings from the
    fundamentals provider when it has them.
    """

    def __init__(self, providers: List[NamedProvider], fundamentals: Optional[NamedProvider] = None):
        if not providers:
            raise ValueError("ChainedQuoteSource needs at least one provider")
        self.providers = providers
        self.fundamentals = fundamentals
        self.last_price_sources: Dict[str, str] = {}
        self.last_fundamentals_sources: Dict[str, str] = {}

    def get_last_sources(self) -> Dict[str, str]:
        return dict(self.last_price_sources)

    async def fetch_quote(self, symbol: str, timeout: float) -> Quote:
        deadline = time.monotonic() + timeout
        reasons: List[str] = []
        timeouts = 0
        quote: Optional[Quote] = None

        for named in self.providers:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                reasons.append(f"{named.name}: no time left")
                timeouts += 1
                break
            try:
                quote = await named.provider.fetch_quote(symbol, remaining)
            except SymbolFetchFailure as exc:
                reasons.append(f"{named.name}: {exc.reason}")
                timeouts += int(exc.timed_out)
                continue
            except Exception as exc:
                logger.warning("Provider %s failed for %s: %s", named.name, symbol, exc)
                reasons.append(f"{named.name}: {exc}")
                continue
            self.last_price_sources[symbol] = named.name
            break

        if quote is None:
            raise SymbolFetchFailure(
                symbol,
                "; ".join(reasons) or "no providers",
                timed_out=bool(reasons) and timeouts == len(reasons),
            )

        return await self._enrich(quote, deadline)

    async def _enrich(self, quote: Quote, deadline: float) -> Quote:
        if self.fundamentals is None or self.fundamentals.name == quote.source:
            return quote
        remaining = deadline - time.monotonic()
        budget = remaining - max(remaining * ENRICH_MARGIN_RATIO, ENRICH_MIN_MARGIN_SECONDS)
        if budget <= 0:
            return quote
        try:
            extra = await asyncio.wait_for(
                self.fundamentals.provider.fetch_quote(quote.symbol, budget),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            logger.debug("Fundamentals for %s from %s timed out, keeping price quote", quote.symbol, self.fundamentals.name)
            return quote
        except Exception as exc:
            logger.debug("Fundamentals unavailable for %s from %s: %s", quote.symbol, self.fundamentals.name, exc)
            return quote

        self.last_fundamentals_sources[quote.symbol] = self.fundamentals.name
        return replace(
            quote,
            pe_ratio=extra.pe_ratio if extra.pe_ratio is not None else quote.pe_ratio,
            earnings=extra.earnings if extra.earnings is not None else quote.earnings,
        )
