import pytest

from portfolio_dashboard.domain.services.config_engine import PortfolioDefinition

from tests.helpers import ManualClock, make_holding


@pytest.fixture()
def five_holdings():
    return (
        make_holding("INFY:NSE", "Technology", "1400", 10),
        make_holding("TCS:NSE", "Technology", "3200", 5),
        make_holding("HDFCBANK:NSE", "Financials", "1500", 5),
        make_holding("RELIANCE:NSE", "Energy", "2500", 8),
        make_holding("ITC:NSE", "Consumer", "420", 30),
    )


@pytest.fixture()
def five_prices():
    return {
        "INFY:NSE": "1580.50",
        "TCS:NSE": "3339.00",
        "HDFCBANK:NSE": "1550.25",
        "RELIANCE:NSE": "2667.50",
        "ITC:NSE": "415.35",
    }


@pytest.fixture()
def definition(five_holdings):
    return PortfolioDefinition(
        holdings=five_holdings,
        sectors=("Technology", "Financials", "Energy", "Consumer", "Healthcare"),
        sector_colors={"Technology": "#3b82f6", "Financials": "#ef4444"},
    )


@pytest.fixture()
def clock():
    return ManualClock()
