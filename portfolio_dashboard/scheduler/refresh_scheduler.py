"""
REFRESH SCHEDULER

Drives periodic portfolio refresh passes and owns the published snapshot.

A pass fetches every symbol concurrently, values the holdings, aggregates,
and publishes the new snapshot with a single reference swap. Only one pass
runs at a time: requests that arrive while a pass is in flight collapse into
one pending follow-up pass. Failed passes leave the previous snapshot in
place and are retried on the next tick.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from portfolio_dashboard.config import settings
from portfolio_dashboard.domain.errors import (
    DegenerateAggregationFailure,
    PortfolioError,
    SymbolFetchFailure,
    TotalFetchFailure,
)
from portfolio_dashboard.domain.models import (
    FetchFailure,
    PortfolioSnapshot,
    RefreshState,
    RefreshStatus,
)
from portfolio_dashboard.infrastructure.market_data.types import QuoteSource
from portfolio_dashboard.services.portfolio_service import PortfolioService, QuoteResult
from portfolio_dashboard.utils.time import now_local

logger = logging.getLogger(__name__)

# A snapshot older than this many intervals is reported stale even without errors
STALE_AFTER_INTERVALS = 2


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of one refresh pass"""
    state: RefreshState
    committed: bool
    transitions: Tuple[RefreshState, ...]
    snapshot: Optional[PortfolioSnapshot] = None
    error: Optional[PortfolioError] = None
    skipped: Tuple[str, ...] = ()
    abandoned: bool = False


class RefreshScheduler:
    """
    Periodic refresh with a single-flight guard.

    Must be started and driven from inside a running asyncio event loop.
    """

    JOB_ID = "portfolio_refresh"

    def __init__(
        self,
        service: PortfolioService,
        quote_source: QuoteSource,
        interval_seconds: Optional[float] = None,
        quote_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._service = service
        self._source = quote_source
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.REFRESH_INTERVAL_SECONDS
        self.quote_timeout = quote_timeout if quote_timeout is not None else settings.QUOTE_TIMEOUT_SECONDS
        self._clock = clock or now_local

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._task: Optional[asyncio.Task] = None
        self._pending = False
        self._closed = False

        self._snapshot: Optional[PortfolioSnapshot] = None
        self._state = RefreshState.IDLE
        self._last_error: Optional[PortfolioError] = None
        self._last_success_at: Optional[datetime] = None
        self._last_attempt_at: Optional[datetime] = None
        self._last_outcome: Optional[RefreshOutcome] = None
        self.passes_run = 0

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    def start(self, run_immediately: bool = True) -> None:
        """Register the interval job and optionally trigger a first pass."""
        if self._closed:
            raise RuntimeError("Refresh scheduler has been shut down")
        if self._scheduler is not None:
            return

        scheduler = AsyncIOScheduler(timezone=pytz.timezone(settings.TIMEZONE))
        scheduler.add_job(
            self._scheduled_tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.JOB_ID,
            name="Portfolio Refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("✅ Refresh scheduler started (every %ss)", self.interval_seconds)

        if run_immediately:
            self.request_refresh()

    async def shutdown(self) -> None:
        """Stop the timer and abandon any in-flight pass."""
        if self._closed:
            return
        self._closed = True
        self._pending = False

        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._state = RefreshState.IDLE
        logger.info("🛑 Refresh scheduler shut down")

    # ------------------------------------------------------------------
    # TRIGGERS
    # ------------------------------------------------------------------

    async def _scheduled_tick(self) -> None:
        self.request_refresh()

    def request_refresh(self) -> None:
        """
        Fire-and-forget refresh trigger.

        If a pass is in flight, one follow-up pass is queued instead.
        """
        if self._closed:
            logger.debug("Refresh requested after shutdown, ignoring")
            return
        if self._task is not None and not self._task.done():
            self._pending = True
            return
        self._task = asyncio.get_running_loop().create_task(self._drain())

    async def refresh(self) -> Optional[RefreshOutcome]:
        """
        Request a refresh and wait for the pass that satisfies it.

        Returns None if the scheduler is shut down before the pass completes.
        """
        self.request_refresh()
        task = self._task
        if task is None or self._closed:
            return None
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._closed:
                return None
            raise

    # ------------------------------------------------------------------
    # READ ACCESS
    # ------------------------------------------------------------------

    def get_current_snapshot(self) -> Optional[PortfolioSnapshot]:
        return self._snapshot

    def get_last_error(self) -> Optional[PortfolioError]:
        return self._last_error

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_pending(self) -> bool:
        return self._pending

    @property
    def last_outcome(self) -> Optional[RefreshOutcome]:
        return self._last_outcome

    def staleness_seconds(self) -> Optional[float]:
        """Seconds since the last successful commit, None before the first."""
        if self._last_success_at is None:
            return None
        return max((self._clock() - self._last_success_at).total_seconds(), 0.0)

    def get_status(self) -> RefreshStatus:
        staleness = self.staleness_seconds()
        aged = staleness is not None and staleness > self.interval_seconds * STALE_AFTER_INTERVALS
        is_stale = self._snapshot is None or self._last_error is not None or aged

        if self._snapshot is None:
            message = "refresh failed, no data available" if self._last_error else "waiting for first refresh"
        elif self._last_error is not None:
            message = f"refresh failed, showing previous data (stale since {self._last_success_at.isoformat()})"
        elif aged:
            message = f"stale since {self._last_success_at.isoformat()}"
        else:
            message = "up to date"

        return RefreshStatus(
            state=self._state,
            last_success_at=self._last_success_at,
            last_attempt_at=self._last_attempt_at,
            staleness_seconds=staleness,
            is_stale=is_stale,
            message=message,
            last_error=str(self._last_error) if self._last_error else None,
            skipped=self._snapshot.skipped if self._snapshot else (),
        )

    # ------------------------------------------------------------------
    # PASS EXECUTION
    # ------------------------------------------------------------------

    async def _drain(self) -> RefreshOutcome:
        while True:
            self._pending = False
            outcome = await self._run_pass()
            if not self._pending or self._closed:
                return outcome

    async def _fetch_one(self, symbol: str) -> QuoteResult:
        try:
            return await asyncio.wait_for(
                self._source.fetch_quote(symbol, self.quote_timeout),
                timeout=self.quote_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("⏱️ Quote fetch for %s timed out after %ss", symbol, self.quote_timeout)
            return FetchFailure(symbol=symbol, reason=f"timed out after {self.quote_timeout}s", timed_out=True)
        except SymbolFetchFailure as exc:
            logger.warning("Quote fetch failed for %s: %s", symbol, exc.reason)
            return FetchFailure(symbol=symbol, reason=exc.reason, timed_out=exc.timed_out)
        except Exception as exc:
            logger.exception("Unexpected error fetching quote for %s", symbol)
            return FetchFailure(symbol=symbol, reason=f"unexpected error: {exc}")

    async def _run_pass(self) -> RefreshOutcome:
        transitions: List[RefreshState] = []

        def enter(state: RefreshState) -> None:
            self._state = state
            transitions.append(state)

        self.passes_run += 1
        self._last_attempt_at = self._clock()
        symbols = self._service.definition.symbols

        enter(RefreshState.FETCHING)
        logger.info("🔄 Refresh pass #%d: fetching %d symbols", self.passes_run, len(symbols))

        # Fan out, then barrier before aggregation
        fetched = await asyncio.gather(*(self._fetch_one(symbol) for symbol in symbols))
        if self._closed:
            return self._abandon(transitions)

        results = dict(zip(symbols, fetched))
        failures = {s: r for s, r in results.items() if isinstance(r, FetchFailure)}

        if symbols and len(failures) == len(symbols):
            error = TotalFetchFailure(symbols, {s: f.reason for s, f in failures.items()})
            return self._fail(transitions, error, enter)

        if failures:
            enter(RefreshState.PARTIAL_FAILURE)
            logger.warning("⚠️ %d of %d quotes failed, continuing with the rest", len(failures), len(symbols))

        enter(RefreshState.AGGREGATING)
        previous_series = self._snapshot.performance if self._snapshot else ()
        try:
            valued, skipped = self._service.value_holdings(results)
            snapshot = self._service.build_snapshot(
                valued,
                skipped,
                previous_series,
                timestamp=self._clock(),
            )
        except DegenerateAggregationFailure as exc:
            return self._fail(transitions, exc, enter)
        except Exception as exc:
            logger.exception("Unexpected error aggregating refresh pass")
            error = DegenerateAggregationFailure(f"Aggregation failed: {exc!r}")
            error.__cause__ = exc
            return self._fail(transitions, error, enter)

        if self._closed:
            return self._abandon(transitions)

        # Single reference swap; readers see either the old or the new snapshot
        self._snapshot = snapshot
        self._last_success_at = snapshot.timestamp
        self._last_error = None
        enter(RefreshState.COMMITTED)

        outcome = RefreshOutcome(
            state=RefreshState.COMMITTED,
            committed=True,
            transitions=tuple(transitions),
            snapshot=snapshot,
            skipped=snapshot.skipped,
        )
        self._last_outcome = outcome
        return outcome

    def _fail(self, transitions, error: PortfolioError, enter) -> RefreshOutcome:
        enter(RefreshState.TOTAL_FAILURE)
        self._last_error = error
        logger.error("❌ Refresh failed, showing previous data: %s", error)
        outcome = RefreshOutcome(
            state=RefreshState.TOTAL_FAILURE,
            committed=False,
            transitions=tuple(transitions),
            error=error,
        )
        self._last_outcome = outcome
        return outcome

    def _abandon(self, transitions) -> RefreshOutcome:
        logger.info("Scheduler shut down mid-pass, discarding results")
        abandoned_in = self._state
        self._state = RefreshState.IDLE
        return RefreshOutcome(
            state=abandoned_in,
            committed=False,
            transitions=tuple(transitions),
            abandoned=True,
        )
