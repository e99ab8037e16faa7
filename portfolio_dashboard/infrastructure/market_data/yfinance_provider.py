"""
YFinance Quote Source
Async-safe Yahoo Finance integration for listed equities
"""

import asyncio
import logging
import random
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

import yfinance as yf

from portfolio_dashboard.config import settings
from portfolio_dashboard.domain.errors import SymbolFetchFailure
from portfolio_dashboard.domain.models import Quote
from portfolio_dashboard.utils.time import now_local

logger = logging.getLogger(__name__)

# Exchange suffixes used by Yahoo Finance
EXCHANGE_SUFFIXES = {
    "NSE": ".NS",
    "BSE": ".BO",
}


def to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


class YFinanceQuoteSource:
    """
    Yahoo Finance quote source
    Async-safe via thread offloading
    """

    name = "yfinance"

    def __init__(self, retries: int = 1, symbol_overrides: Optional[Dict[str, str]] = None):
        self.retries = retries
        self.symbol_mapping: Dict[str, str] = {}
        self._apply_symbol_overrides(settings.YF_SYMBOL_OVERRIDES)
        if symbol_overrides:
            self.symbol_mapping.update({k.upper(): v for k, v in symbol_overrides.items()})

    def _apply_symbol_overrides(self, raw: Optional[str]) -> None:
        """
        Apply Yahoo symbol mapping overrides.

        Format: YF_SYMBOL_OVERRIDES="INFY:NSE=INFY.NS,FOO:BSE=FOO.BO"
        """
        raw = (raw or "").strip()
        if not raw:
            return
        for pair in raw.split(","):
            pair = pair.strip()
            if not pair or "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip().upper()
            value = value.strip()
            if key and value:
                self.symbol_mapping[key] = value

    def to_yahoo_symbol(self, symbol: str) -> str:
        """INFY:NSE -> INFY.NS, RELIANCE:BSE -> RELIANCE.BO"""
        mapped = self.symbol_mapping.get(symbol.upper())
        if mapped:
            return mapped
        if ":" not in symbol:
            return symbol
        ticker, exchange = symbol.split(":", 1)
        return f"{ticker}{EXCHANGE_SUFFIXES.get(exchange.upper(), '')}"

    # ------------------------------------------------------------------
    # INTERNAL HELPERS
    # ------------------------------------------------------------------

    async def _info(self, yf_symbol: str) -> dict:
        """
        Async-safe wrapper around yfinance Ticker.info
        """
        return await asyncio.to_thread(lambda: yf.Ticker(yf_symbol).info)

    async def _info_with_retry(self, yf_symbol: str, deadline: float) -> dict:
        """
        Retry wrapper around info to handle transient failures.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                return await asyncio.wait_for(self._info(yf_symbol), timeout=remaining)
            except asyncio.TimeoutError:
                raise
            except Exception as exc:
                last_exc = exc
                if attempt < self.retries:
                    await asyncio.sleep(0.4 * (2 ** attempt) + random.random() * 0.2)
        if last_exc:
            raise last_exc
        raise asyncio.TimeoutError()

    # ------------------------------------------------------------------
    # QUOTES
    # ------------------------------------------------------------------

    async def fetch_quote(self, symbol: str, timeout: float) -> Quote:
        yf_symbol = self.to_yahoo_symbol(symbol)
        deadline = time.monotonic() + timeout

        try:
            info = await self._info_with_retry(yf_symbol, deadline)
        except asyncio.TimeoutError:
            raise SymbolFetchFailure(symbol, f"yfinance timed out after {timeout}s", timed_out=True)
        except Exception as exc:
            logger.warning("Yahoo fetch error for %s (%s): %s", symbol, yf_symbol, exc)
            raise SymbolFetchFailure(symbol, f"yfinance error: {exc}")

        info = info or {}
        price = to_decimal(info.get("regularMarketPrice") or info.get("currentPrice"))
        if price is None or price <= 0:
            raise SymbolFetchFailure(symbol, f"no price data from yfinance for {yf_symbol}")

        pe_ratio = to_decimal(info.get("trailingPE"))
        eps = info.get("epsTrailingTwelveMonths")

        return Quote(
            symbol=symbol,
            price=price,
            fetched_at=now_local(),
            pe_ratio=pe_ratio,
            earnings=str(eps) if eps is not None else None,
            source=self.name,
        )
