"""
Background portfolio snapshot script using APScheduler.
Runs periodically to refresh the P2P market rate and record a portfolio snapshot
in every display currency.
"""

import time
import logging
from dotenv import load_dotenv
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from cryptofolio.config import get_settings
from cryptofolio.db_engine import init_db
from cryptofolio.errors import DataIntegrityError, MissingQuoteError
from cryptofolio.repositories import P2PRepository
from cryptofolio.services.history import PortfolioHistoryService
from cryptofolio.services.market_data import MarketDataService
from cryptofolio.services.portfolio import PortfolioService

logger = logging.getLogger(__name__)


def refresh_market_rate() -> bool:
    """
    Record the current P2P crypto/fiat market rate from yfinance.

    Returns:
        True if a rate was recorded, False if none was available
    """
    settings = get_settings()
    crypto, fiat = settings.p2p_default_crypto, settings.p2p_default_fiat
    rate = MarketDataService.get_current_price(crypto, fiat)
    if rate is None:
        logger.warning(f"No {crypto}/{fiat} rate available, keeping the last stored one")
        return False
    P2PRepository.add_market_rate(crypto, fiat, rate, source="yfinance")
    logger.info(f"{crypto}/{fiat} market rate: {rate}")
    return True


def take_snapshot() -> bool:
    """
    Main job function: summarize the portfolio and store a snapshot.
    Called by the scheduler at configured intervals.

    Returns:
        True if a snapshot was stored
    """
    logger.info("=" * 60)
    logger.info("Starting portfolio snapshot...")
    logger.info("=" * 60)

    MarketDataService.clear_cache()
    refresh_market_rate()

    try:
        summary = PortfolioService.calculate_portfolio()
    except MissingQuoteError as e:
        logger.warning(f"Skipping snapshot, quote missing: {e}")
        return False
    except DataIntegrityError as e:
        logger.error(f"Skipping snapshot, ledger is inconsistent: {e}")
        return False

    PortfolioHistoryService.create_snapshot(summary)
    for currency, totals in summary.totals.items():
        logger.info(
            f"{currency}: value {totals.total_value:.2f}, invested {totals.total_invested:.2f}, "
            f"P&L {totals.total_pnl:.2f}"
        )

    logger.info("=" * 60)
    logger.info("Portfolio snapshot complete")
    logger.info("=" * 60)
    return True


def start_snapshot_scheduler() -> BackgroundScheduler:
    """
    Start the background scheduler for portfolio snapshots.
    Runs on the cron schedule from settings (every 6 hours by default).
    """
    settings = get_settings()
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        take_snapshot,
        trigger=CronTrigger(hour=settings.snapshot_cron_hour, minute=settings.snapshot_cron_minute),
        id='portfolio_snapshot',
        name='Portfolio Snapshot',
        replace_existing=True
    )

    logger.info("Taking initial snapshot on startup...")
    take_snapshot()

    scheduler.start()
    logger.info(
        f"Snapshot scheduler started (hour={settings.snapshot_cron_hour}, "
        f"minute={settings.snapshot_cron_minute})"
    )
    return scheduler


def main(argv=None):
    import sys

    argv = sys.argv[1:] if argv is None else argv

    load_dotenv()
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()

    if argv and argv[0] == "--once":
        # Run once and exit
        take_snapshot()
        return

    scheduler = start_snapshot_scheduler()
    print("\n" + "=" * 60)
    print("cryptofolio snapshot monitor is running...")
    print("Press Ctrl+C to stop.")
    print("=" * 60 + "\n")
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down snapshot monitor...")
        scheduler.shutdown()
        logger.info("Snapshot monitor stopped.")


if __name__ == "__main__":
    main()
