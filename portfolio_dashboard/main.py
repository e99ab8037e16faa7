"""
Portfolio dashboard engine entry point

Loads the portfolio definition, builds the quote source chain and runs the
refresh scheduler. ``--once`` runs a single pass and prints the snapshot.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from portfolio_dashboard.config import settings
from portfolio_dashboard.core.logging import get_logger, setup_logging
from portfolio_dashboard.domain.schemas.portfolio import PortfolioSnapshotSchema, RefreshStatusSchema
from portfolio_dashboard.domain.services.config_engine import ConfigEngine
from portfolio_dashboard.domain.services.portfolio_aggregator import PortfolioAggregator
from portfolio_dashboard.infrastructure.market_data.provider_factory import get_quote_source
from portfolio_dashboard.scheduler.refresh_scheduler import RefreshScheduler
from portfolio_dashboard.services.portfolio_service import PortfolioService

logger = get_logger(__name__)


def build_scheduler(config_dir: Path, interval_seconds: Optional[float] = None) -> RefreshScheduler:
    config_engine = ConfigEngine(config_dir)
    config_engine.load_all()
    definition = config_engine.portfolio
    logger.info(
        "Loaded portfolio: %d holdings across %d sectors",
        len(definition.holdings),
        len(definition.sectors),
    )

    service = PortfolioService(
        definition,
        portfolio_aggregator=PortfolioAggregator(max_series_length=settings.PERFORMANCE_SERIES_MAX),
    )
    refresh_config = config_engine.get_app_setting("refresh") or {}
    if interval_seconds is None and refresh_config.get("interval_seconds") is not None:
        interval_seconds = float(refresh_config["interval_seconds"])
    quote_timeout = refresh_config.get("quote_timeout_seconds")

    return RefreshScheduler(
        service,
        get_quote_source(config_engine),
        interval_seconds=interval_seconds,
        quote_timeout=float(quote_timeout) if quote_timeout is not None else None,
    )


async def run_once(config_dir: Path) -> int:
    scheduler = build_scheduler(config_dir)
    try:
        outcome = await scheduler.refresh()
    finally:
        await scheduler.shutdown()

    if outcome is None or not outcome.committed:
        status = RefreshStatusSchema.from_domain(scheduler.get_status())
        print(status.model_dump_json(indent=2))
        return 1

    print(PortfolioSnapshotSchema.from_domain(outcome.snapshot).model_dump_json(indent=2))
    return 0


async def run_forever(config_dir: Path, interval_seconds: Optional[float] = None) -> None:
    scheduler = build_scheduler(config_dir, interval_seconds)
    scheduler.start()
    logger.info("🎯 Refresh scheduler is running. Press Ctrl+C to exit.")
    try:
        while True:
            await asyncio.sleep(1)
    finally:
        await scheduler.shutdown()


def cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Portfolio valuation refresh engine")
    parser.add_argument("--config-dir", type=Path, default=settings.CONFIG_DIR, help="Directory with portfolio.yml and app.yml")
    parser.add_argument("--once", action="store_true", help="Run a single refresh pass and print the snapshot")
    parser.add_argument("--interval", type=float, default=None, help="Refresh interval in seconds")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    args = parser.parse_args(argv)

    # --once prints the snapshot on stdout, so logs go to stderr
    setup_logging("DEBUG" if settings.DEBUG else args.log_level, stream=sys.stderr if args.once else None)
    logger.info("Starting portfolio engine (env=%s, config=%s)", settings.APP_ENV, args.config_dir)

    if args.once:
        return asyncio.run(run_once(args.config_dir))

    try:
        asyncio.run(run_forever(args.config_dir, args.interval))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    sys.exit(cli())
