import asyncio
import pytest
from decimal import Decimal

from portfolio_dashboard.domain.errors import DegenerateAggregationFailure, TotalFetchFailure
from portfolio_dashboard.domain.models import RefreshState
from portfolio_dashboard.domain.services.config_engine import PortfolioDefinition
from portfolio_dashboard.domain.services.portfolio_aggregator import PortfolioAggregator
from portfolio_dashboard.infrastructure.market_data.provider_chain import ChainedQuoteSource, NamedProvider
from portfolio_dashboard.scheduler.refresh_scheduler import RefreshScheduler
from portfolio_dashboard.services.portfolio_service import PortfolioService

from tests.helpers import StubQuoteSource


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def make_scheduler(definition, source, clock=None, interval=15, timeout=1.0, series_length=30):
    service = PortfolioService(definition, portfolio_aggregator=PortfolioAggregator(series_length))
    return RefreshScheduler(
        service,
        source,
        interval_seconds=interval,
        quote_timeout=timeout,
        clock=clock,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_full_pass_commits_snapshot(definition, five_prices, clock):
    scheduler = make_scheduler(definition, StubQuoteSource(five_prices), clock)
    assert scheduler.get_current_snapshot() is None

    outcome = await scheduler.refresh()

    assert outcome.committed
    assert outcome.transitions == (RefreshState.FETCHING, RefreshState.AGGREGATING, RefreshState.COMMITTED)
    snapshot = scheduler.get_current_snapshot()
    assert snapshot is outcome.snapshot
    assert len(snapshot.holdings) == 5
    assert snapshot.total_investment == Decimal("70100.00")
    assert snapshot.timestamp == clock.now
    assert scheduler.state == RefreshState.COMMITTED
    assert scheduler.get_last_error() is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_partial_failure_values_remaining_holdings(definition, five_prices, clock):
    source = StubQuoteSource(five_prices, failing={"TCS:NSE", "ITC:NSE"})
    scheduler = make_scheduler(definition, source, clock)

    outcome = await scheduler.refresh()

    assert outcome.transitions == (
        RefreshState.FETCHING,
        RefreshState.PARTIAL_FAILURE,
        RefreshState.AGGREGATING,
        RefreshState.COMMITTED,
    )
    snapshot = scheduler.get_current_snapshot()
    assert [h.symbol for h in snapshot.holdings] == ["INFY:NSE", "HDFCBANK:NSE", "RELIANCE:NSE"]
    assert snapshot.skipped == ("TCS:NSE", "ITC:NSE")
    assert snapshot.total_investment == Decimal("41500.00")
    assert snapshot.present_value == Decimal("44896.25")
    assert snapshot.total_gain == Decimal("3396.25")
    assert scheduler.get_status().skipped == ("TCS:NSE", "ITC:NSE")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_total_failure_keeps_previous_snapshot(definition, five_prices, clock):
    source = StubQuoteSource(five_prices)
    scheduler = make_scheduler(definition, source, clock)
    await scheduler.refresh()
    previous = scheduler.get_current_snapshot()

    source.failing = set(five_prices)
    clock.advance(15)
    outcome = await scheduler.refresh()

    assert not outcome.committed
    assert outcome.transitions == (RefreshState.FETCHING, RefreshState.TOTAL_FAILURE)
    assert isinstance(outcome.error, TotalFetchFailure)
    assert scheduler.get_current_snapshot() is previous
    assert isinstance(scheduler.get_last_error(), TotalFetchFailure)

    status = scheduler.get_status()
    assert status.is_stale
    assert status.message.startswith("refresh failed, showing previous data")

    # next good pass clears the error
    source.failing = set()
    clock.advance(15)
    outcome = await scheduler.refresh()
    assert outcome.committed
    assert scheduler.get_last_error() is None
    assert scheduler.get_current_snapshot() is not previous


@pytest.mark.integration
@pytest.mark.asyncio
async def test_total_failure_before_first_commit(definition, five_prices, clock):
    scheduler = make_scheduler(definition, StubQuoteSource(five_prices, failing=set(five_prices)), clock)

    await scheduler.refresh()

    assert scheduler.get_current_snapshot() is None
    status = scheduler.get_status()
    assert status.message == "refresh failed, no data available"
    assert status.is_stale
    assert status.last_success_at is None
    assert status.last_attempt_at == clock.now


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unusable_prices_do_not_publish_zero_portfolio(definition, five_prices, clock):
    zero_prices = {symbol: "0" for symbol in five_prices}
    scheduler = make_scheduler(definition, StubQuoteSource(zero_prices), clock)

    outcome = await scheduler.refresh()

    assert outcome.state == RefreshState.TOTAL_FAILURE
    assert isinstance(outcome.error, DegenerateAggregationFailure)
    assert scheduler.get_current_snapshot() is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_hanging_quote_times_out_and_is_skipped(definition, five_prices, clock):
    source = StubQuoteSource(five_prices, hanging={"RELIANCE:NSE"})
    scheduler = make_scheduler(definition, source, clock, timeout=0.05)

    outcome = await asyncio.wait_for(scheduler.refresh(), timeout=2)

    assert outcome.committed
    assert RefreshState.PARTIAL_FAILURE in outcome.transitions
    assert outcome.snapshot.skipped == ("RELIANCE:NSE",)
    assert len(outcome.snapshot.holdings) == 4


@pytest.mark.integration
@pytest.mark.asyncio
async def test_requests_during_a_pass_coalesce_into_one_follow_up(definition, five_prices, clock):
    source = StubQuoteSource(five_prices)
    source.gate = asyncio.Event()
    scheduler = make_scheduler(definition, source, clock)

    scheduler.request_refresh()
    await wait_until(lambda: source.in_flight == 5)
    assert scheduler.is_refreshing

    for _ in range(3):
        scheduler.request_refresh()
    assert scheduler.has_pending

    source.gate.set()
    outcome = await scheduler.refresh()

    assert outcome.committed
    assert scheduler.passes_run == 2
    assert len(source.calls) == 10
    assert source.max_in_flight == 5
    assert not scheduler.has_pending
    assert not scheduler.is_refreshing


@pytest.mark.integration
@pytest.mark.asyncio
async def test_shutdown_mid_pass_publishes_nothing(definition, five_prices, clock):
    source = StubQuoteSource(five_prices)
    source.gate = asyncio.Event()
    scheduler = make_scheduler(definition, source, clock)

    waiter = asyncio.create_task(scheduler.refresh())
    await wait_until(lambda: source.in_flight == 5)

    await scheduler.shutdown()

    assert await waiter is None
    assert scheduler.get_current_snapshot() is None
    assert scheduler.state == RefreshState.IDLE
    assert scheduler.get_status().state == RefreshState.IDLE
    assert not scheduler.is_refreshing

    scheduler.request_refresh()
    assert not scheduler.is_refreshing
    assert await scheduler.refresh() is None
    with pytest.raises(RuntimeError):
        scheduler.start()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_staleness_tracks_last_commit(definition, five_prices, clock):
    scheduler = make_scheduler(definition, StubQuoteSource(five_prices), clock, interval=15)

    status = scheduler.get_status()
    assert status.message == "waiting for first refresh"
    assert status.staleness_seconds is None
    assert status.is_stale

    await scheduler.refresh()
    committed_at = clock.now

    clock.advance(10)
    status = scheduler.get_status()
    assert status.staleness_seconds == 10
    assert not status.is_stale
    assert status.message == "up to date"

    clock.advance(25)
    status = scheduler.get_status()
    assert status.staleness_seconds == 35
    assert status.is_stale
    assert status.message == f"stale since {committed_at.isoformat()}"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_performance_series_is_bounded(definition, five_prices, clock):
    scheduler = make_scheduler(definition, StubQuoteSource(five_prices), clock, series_length=3)

    labels = []
    for _ in range(4):
        clock.advance(1)
        outcome = await scheduler.refresh()
        labels.append(outcome.snapshot.performance[-1].label)

    performance = scheduler.get_current_snapshot().performance
    assert len(performance) == 3
    assert [p.label for p in performance] == labels[1:]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_empty_portfolio_commits_zero_snapshot(clock):
    definition = PortfolioDefinition(holdings=(), sectors=("Technology",), sector_colors={})
    source = StubQuoteSource({})
    scheduler = make_scheduler(definition, source, clock)

    outcome = await scheduler.refresh()

    assert outcome.committed
    snapshot = outcome.snapshot
    assert snapshot.present_value == Decimal("0")
    assert snapshot.gain_percentage == Decimal("0")
    assert snapshot.sector_totals["Technology"].holdings_count == 0
    assert source.calls == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_start_runs_first_pass_and_shutdown_stops_job(definition, five_prices):
    source = StubQuoteSource(five_prices)
    scheduler = make_scheduler(definition, source, interval=60)

    scheduler.start()
    try:
        await wait_until(lambda: scheduler.get_current_snapshot() is not None)
        assert scheduler._scheduler.get_job(RefreshScheduler.JOB_ID) is not None
    finally:
        await scheduler.shutdown()

    assert scheduler._scheduler is None
    assert scheduler.passes_run == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_nan_price_is_skipped(definition, five_prices, clock):
    prices = dict(five_prices, **{"TCS:NSE": "NaN"})
    scheduler = make_scheduler(definition, StubQuoteSource(prices), clock)

    outcome = await scheduler.refresh()

    assert outcome.committed
    assert outcome.snapshot.skipped == ("TCS:NSE",)
    assert len(outcome.snapshot.holdings) == 4


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unexpected_aggregation_error_becomes_total_failure(monkeypatch, definition, five_prices, clock):
    source = StubQuoteSource(five_prices)
    scheduler = make_scheduler(definition, source, clock)
    await scheduler.refresh()
    previous = scheduler.get_current_snapshot()

    def broken_build(*args, **kwargs):
        raise ArithmeticError("bad arithmetic")

    monkeypatch.setattr(scheduler._service, "build_snapshot", broken_build)
    outcome = await scheduler.refresh()

    assert outcome.state == RefreshState.TOTAL_FAILURE
    assert outcome.transitions == (RefreshState.FETCHING, RefreshState.AGGREGATING, RefreshState.TOTAL_FAILURE)
    assert isinstance(outcome.error, DegenerateAggregationFailure)
    assert isinstance(outcome.error.__cause__, ArithmeticError)
    assert scheduler.state == RefreshState.TOTAL_FAILURE
    assert scheduler.get_current_snapshot() is previous
    assert scheduler.get_status().message.startswith("refresh failed, showing previous data")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_follow_up_pass_runs_after_aggregation_error(monkeypatch, definition, five_prices, clock):
    source = StubQuoteSource(five_prices)
    source.gate = asyncio.Event()
    scheduler = make_scheduler(definition, source, clock)
    original_build = scheduler._service.build_snapshot
    builds = []

    def flaky_build(*args, **kwargs):
        builds.append(1)
        if len(builds) == 1:
            raise ArithmeticError("bad arithmetic")
        return original_build(*args, **kwargs)

    monkeypatch.setattr(scheduler._service, "build_snapshot", flaky_build)

    scheduler.request_refresh()
    await wait_until(lambda: source.in_flight == 5)
    scheduler.request_refresh()
    source.gate.set()

    await wait_until(lambda: not scheduler.is_refreshing)

    assert scheduler.passes_run == 2
    assert scheduler.state == RefreshState.COMMITTED
    assert scheduler.get_current_snapshot() is not None
    assert scheduler.get_last_error() is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_slow_fundamentals_do_not_fail_the_pass(definition, five_prices, clock):
    class SlowFundamentals:
        async def fetch_quote(self, symbol, timeout):
            await asyncio.sleep(5)

    chain = ChainedQuoteSource(
        [NamedProvider("stub", StubQuoteSource(five_prices))],
        fundamentals=NamedProvider("slow", SlowFundamentals()),
    )
    scheduler = make_scheduler(definition, chain, clock, timeout=0.1)

    outcome = await asyncio.wait_for(scheduler.refresh(), timeout=2)

    assert outcome.committed
    assert len(outcome.snapshot.holdings) == 5
    assert outcome.snapshot.skipped == ()
