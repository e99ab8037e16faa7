"""
CONFIG ENGINE
Load, validate, and expose the portfolio definition

RESPONSIBILITIES:
- Load YAML configuration files (portfolio.yml, app.yml)
- Validate holdings at load time
- Expose read-only typed objects

RULES:
❌ No silent defaults for holding fields
✅ Fail fast on malformed holdings
✅ Deterministic output
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from portfolio_dashboard.domain.errors import MalformedHoldingFailure
from portfolio_dashboard.domain.models import HoldingStatic

_REQUIRED_HOLDING_FIELDS = ("symbol", "name", "exchange", "sector", "purchase_price", "quantity")


@dataclass(frozen=True)
class PortfolioDefinition:
    """Static portfolio: holdings plus declared sectors"""
    holdings: Tuple[HoldingStatic, ...]
    sectors: Tuple[str, ...]
    sector_colors: Mapping[str, str]

    @property
    def symbols(self) -> List[str]:
        return [h.symbol for h in self.holdings]

    def get_holding(self, symbol: str) -> HoldingStatic:
        """Get holding by symbol"""
        for holding in self.holdings:
            if holding.symbol == symbol:
                return holding
        raise ValueError(f"Holding not found: {symbol}")


def parse_holding(data: Mapping[str, Any], index: int = 0) -> HoldingStatic:
    """
    Build a HoldingStatic from a raw mapping.

    Raises:
        MalformedHoldingFailure: missing fields or non-positive price/quantity
    """
    if not isinstance(data, Mapping):
        raise MalformedHoldingFailure(f"Holding #{index} is not a mapping")

    missing = [f for f in _REQUIRED_HOLDING_FIELDS if data.get(f) in (None, "")]
    if missing:
        raise MalformedHoldingFailure(f"Holding #{index} missing fields: {', '.join(missing)}")

    symbol = str(data["symbol"]).strip()

    try:
        purchase_price = Decimal(str(data["purchase_price"]))
    except InvalidOperation:
        raise MalformedHoldingFailure(f"{symbol}: purchase_price is not a number")
    if not purchase_price.is_finite() or purchase_price <= 0:
        raise MalformedHoldingFailure(f"{symbol}: purchase_price must be positive, got {purchase_price}")

    quantity = data["quantity"]
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise MalformedHoldingFailure(f"{symbol}: quantity must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise MalformedHoldingFailure(f"{symbol}: quantity must be positive, got {quantity}")

    purchase_date = data.get("purchase_date")
    if isinstance(purchase_date, str):
        try:
            purchase_date = date.fromisoformat(purchase_date)
        except ValueError:
            raise MalformedHoldingFailure(f"{symbol}: invalid purchase_date {purchase_date!r}")

    return HoldingStatic(
        symbol=symbol,
        name=str(data["name"]),
        exchange=str(data["exchange"]),
        sector=str(data["sector"]),
        purchase_price=purchase_price,
        quantity=quantity,
        purchase_date=purchase_date,
    )


class ConfigEngine:
    """
    Configuration Engine
    Single source of truth for the portfolio definition and app settings
    """

    def __init__(self, config_dir: Path):
        """Initialize with config directory"""
        self.config_dir = Path(config_dir)
        self._portfolio: PortfolioDefinition = None
        self._app_config: Dict = None

    def load_all(self) -> None:
        """Load all configuration files"""
        self._load_portfolio()
        self._load_app_config()

    def _read_yaml(self, filename: str, label: str) -> Dict:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"{label} config not found: {path}")
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}

    def _load_portfolio(self) -> None:
        """Load holdings and sectors from portfolio.yml"""
        data = self._read_yaml("portfolio.yml", "Portfolio")

        sectors: List[str] = []
        colors: Dict[str, str] = {}
        for entry in data.get("sectors", []) or []:
            if isinstance(entry, Mapping):
                name = str(entry["name"])
                if entry.get("color"):
                    colors[name] = str(entry["color"])
            else:
                name = str(entry)
            if name in sectors:
                raise MalformedHoldingFailure(f"Duplicate sector in configuration: {name}")
            sectors.append(name)

        holdings = [
            parse_holding(raw, index)
            for index, raw in enumerate(data.get("holdings", []) or [])
        ]

        symbols = [h.symbol for h in holdings]
        if len(symbols) != len(set(symbols)):
            raise MalformedHoldingFailure("Duplicate holding symbols found in configuration")

        self._portfolio = PortfolioDefinition(
            holdings=tuple(holdings),
            sectors=tuple(sectors),
            sector_colors=colors,
        )

    def _load_app_config(self) -> None:
        """Load application config from app.yml"""
        self._app_config = self._read_yaml("app.yml", "App")

    # Public getters

    @property
    def portfolio(self) -> PortfolioDefinition:
        """Get portfolio definition"""
        if self._portfolio is None:
            raise RuntimeError("Config not loaded. Call load_all() first")
        return self._portfolio

    def get_app_setting(self, *keys) -> Any:
        """Get app setting by nested keys"""
        if self._app_config is None:
            raise RuntimeError("Config not loaded. Call load_all() first")

        value = self._app_config
        for key in keys:
            if not isinstance(value, dict) or key not in value:
                return None
            value = value[key]
        return value
