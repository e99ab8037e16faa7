"""
Quote source factory (config-driven).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from portfolio_dashboard.domain.services.config_engine import ConfigEngine
from portfolio_dashboard.infrastructure.market_data.google_finance_provider import GoogleFinanceQuoteSource
from portfolio_dashboard.infrastructure.market_data.provider_chain import (
    ChainedQuoteSource,
    NamedProvider,
    TrackedQuoteSource,
)
from portfolio_dashboard.infrastructure.market_data.types import QuoteSource
from portfolio_dashboard.infrastructure.market_data.yfinance_provider import YFinanceQuoteSource

logger = logging.getLogger(__name__)


def _build_provider(name: str, market_config: Dict) -> QuoteSource:
    name = (name or "").lower()
    if name == "yfinance":
        yf_cfg = market_config.get("yfinance", {}) or {}
        return YFinanceQuoteSource(
            retries=int(yf_cfg.get("retries", 1)),
            symbol_overrides=yf_cfg.get("symbol_overrides"),
        )
    if name == "google_finance":
        gf_cfg = market_config.get("google_finance", {}) or {}
        return GoogleFinanceQuoteSource(
            base_url=gf_cfg.get("base_url"),
            request_timeout=float(gf_cfg.get("request_timeout", 8)),
        )
    raise ValueError(f"Unknown quote provider: {name}")


def get_quote_source(config_engine: ConfigEngine):
    market_config = config_engine.get_app_setting("market_data") or {}
    provider_name = market_config.get("provider", "yfinance")
    fallback_names = market_config.get("fallback_providers", []) or []
    fundamentals_name: Optional[str] = market_config.get("fundamentals_provider")

    providers: List[NamedProvider] = []
    for candidate in [provider_name, *fallback_names]:
        if not candidate or any(p.name == candidate.lower() for p in providers):
            continue
        try:
            providers.append(NamedProvider(candidate.lower(), _build_provider(candidate, market_config)))
        except ValueError as exc:
            logger.warning("Skipping quote provider %s: %s", candidate, exc)

    if not providers:
        raise RuntimeError("No valid quote providers configured")

    fundamentals: Optional[NamedProvider] = None
    if fundamentals_name:
        existing = next((p for p in providers if p.name == fundamentals_name.lower()), None)
        if existing is not None:
            fundamentals = existing
        else:
            try:
                fundamentals = NamedProvider(
                    fundamentals_name.lower(),
                    _build_provider(fundamentals_name, market_config),
                )
            except ValueError as exc:
                logger.warning("Skipping fundamentals provider %s: %s", fundamentals_name, exc)

    if len(providers) == 1 and fundamentals is None:
        only = providers[0]
        return TrackedQuoteSource(only.provider, only.name)
    return ChainedQuoteSource(providers, fundamentals=fundamentals)
