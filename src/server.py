"""Background maintenance runner for the Ordering domain.

Runs the periodic jobs that keep orders and carts consistent:
- expires pending orders whose payment window has elapsed
- re-feeds due webhook events from the retry queue
- purges cart lines whose product left the catalogue

Usage:
    python src/server.py                  # Loop every ORDERING_SWEEP_INTERVAL_SECONDS
    python src/server.py --interval 60    # Loop every 60 seconds
    python src/server.py --once           # Run each job once and exit
"""

import argparse
import asyncio

import structlog

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


def run_jobs():
    """Run every maintenance job once inside the domain context."""
    from ordering.cart.maintenance import PurgeOrphanedCartLines
    from ordering.order.expiry import expire_stale_pending_orders
    from ordering.webhook.ingestion import WebhookIngester

    with ordering.domain_context():
        expired = expire_stale_pending_orders()
        report = WebhookIngester().drain_retries()
        purged = ordering.process(PurgeOrphanedCartLines(), asynchronous=False)

    logger.info(
        "Maintenance cycle complete",
        expired_orders=expired,
        webhook_retries=report.retried,
        purged_cart_lines=purged,
    )
    return expired, report, purged


async def run(interval: int):
    logger.info("Maintenance runner started", interval_seconds=interval)
    while True:
        try:
            await asyncio.to_thread(run_jobs)
        except Exception:
            logger.exception("Maintenance cycle failed")
        await asyncio.sleep(interval)


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Ordering maintenance runner")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.sweep_interval_seconds,
        help="Seconds between maintenance cycles (default: ORDERING_SWEEP_INTERVAL_SECONDS)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    args = parser.parse_args()

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    ordering.init()

    if args.once:
        run_jobs()
        return

    asyncio.run(run(args.interval))


if __name__ == "__main__":
    main()
