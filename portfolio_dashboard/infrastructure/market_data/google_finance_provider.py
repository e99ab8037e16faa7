"""
Google Finance Quote Source
Scrapes the public quote page for price, P/E ratio and EPS
"""

import logging
import re
from decimal import Decimal
from typing import Dict, Optional

import httpx
from bs4 import BeautifulSoup

from portfolio_dashboard.config import settings
from portfolio_dashboard.domain.errors import SymbolFetchFailure
from portfolio_dashboard.domain.models import Quote
from portfolio_dashboard.infrastructure.market_data.yfinance_provider import to_decimal
from portfolio_dashboard.utils.time import now_local

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d[\d,]*\.?\d*")

# Row labels on the quote page, mapped to result keys
_STAT_LABELS = {
    "P/E ratio": "pe_ratio",
    "EPS": "earnings",
}


def _parse_number(text: Optional[str]) -> Optional[Decimal]:
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    return to_decimal(match.group(0).replace(",", ""))


def parse_quote_page(html: str) -> Dict[str, object]:
    """
    Extract price and fundamentals from a Google Finance quote page.

    Returns a dict with optional keys ``price``, ``pe_ratio`` and ``earnings``.
    """
    soup = BeautifulSoup(html, "html.parser")
    result: Dict[str, object] = {}

    price_node = soup.select_one("div.YMlKec.fxKbKc")
    price = _parse_number(price_node.get_text(strip=True)) if price_node else None
    if price is not None:
        result["price"] = price

    for label, key in _STAT_LABELS.items():
        text = None
        node = soup.find(attrs={"aria-label": label})
        if node is not None:
            text = node.get_text(strip=True)
        else:
            for row in soup.select("div.gyFHrc"):
                name = row.select_one(".mfs7Fc")
                value = row.select_one(".P6K39c")
                if name is not None and value is not None and name.get_text(strip=True) == label:
                    text = value.get_text(strip=True)
                    break
        if not text or text in ("-", "N/A"):
            continue
        if key == "pe_ratio":
            pe = _parse_number(text)
            if pe is not None:
                result[key] = pe
        else:
            result[key] = text

    return result


class GoogleFinanceQuoteSource:
    """
    Google Finance quote source

    Symbols are used as-is (``INFY:NSE``), which is the page's own format.
    """

    name = "google_finance"

    HEADERS = {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        "Accept": "text/html,application/xhtml+xml",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(self, base_url: Optional[str] = None, request_timeout: float = 8.0):
        self.base_url = (base_url or settings.GOOGLE_FINANCE_BASE_URL).rstrip("/")
        self.request_timeout = request_timeout

    async def _fetch_page(self, symbol: str, timeout: float) -> str:
        url = f"{self.base_url}/{symbol}"
        async with httpx.AsyncClient(headers=self.HEADERS, timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            if response.status_code != 200:
                raise SymbolFetchFailure(symbol, f"google finance HTTP {response.status_code}")
            return response.text

    async def fetch_quote(self, symbol: str, timeout: float) -> Quote:
        try:
            html = await self._fetch_page(symbol, min(timeout, self.request_timeout))
        except SymbolFetchFailure:
            raise
        except httpx.TimeoutException:
            raise SymbolFetchFailure(symbol, "google finance timed out", timed_out=True)
        except httpx.HTTPError as exc:
            logger.warning("Google Finance fetch error for %s: %s", symbol, exc)
            raise SymbolFetchFailure(symbol, f"google finance error: {exc}")

        data = parse_quote_page(html)
        price = data.get("price")
        if price is None or price <= 0:
            raise SymbolFetchFailure(symbol, "no price on google finance page")

        return Quote(
            symbol=symbol,
            price=price,
            fetched_at=now_local(),
            pe_ratio=data.get("pe_ratio"),
            earnings=data.get("earnings"),
            source=self.name,
        )
