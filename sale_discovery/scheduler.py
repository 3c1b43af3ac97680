"""
Scheduler module for Sale Discovery.

Uses APScheduler to run the discovery cycle on a fixed interval
(every 5 minutes by default). The manual trigger on the admin server
calls the same DiscoveryEngine.run_cycle, and the engine refuses to
start a cycle while another is running.

Can also be run manually via command line.
"""

import logging
from typing import Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .pipeline import DiscoveryEngine, get_engine

logger = logging.getLogger(__name__)

DISCOVERY_JOB_ID = "discover_sales"


def run_discovery_job(engine: DiscoveryEngine) -> None:
    """Scheduled job wrapper: a cycle never raises, but log just in case."""
    try:
        engine.run_cycle()
    except Exception as e:
        logger.error(f"Discovery job failed: {e}")


def create_scheduler(
    engine: Optional[DiscoveryEngine] = None,
    blocking: bool = True,
    interval_minutes: Optional[int] = None,
) -> BaseScheduler:
    """
    Create and configure the APScheduler.

    Jobs:
    1. discover_sales: Every N minutes - fetch, classify and triage

    Args:
        engine: Discovery engine (defaults to the shared engine)
        blocking: BlockingScheduler for the CLI, BackgroundScheduler
            when running alongside the admin server
        interval_minutes: Override for the configured interval

    Returns:
        Configured scheduler (not started)
    """
    engine = engine or get_engine()
    minutes = interval_minutes or engine.config.interval_minutes

    scheduler = BlockingScheduler() if blocking else BackgroundScheduler()

    scheduler.add_job(
        run_discovery_job,
        trigger=IntervalTrigger(minutes=minutes),
        args=[engine],
        id=DISCOVERY_JOB_ID,
        name="Discover, classify and publish sales",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(f"Scheduler configured: discovery every {minutes} minutes")
    return scheduler


def start_scheduler(engine: Optional[DiscoveryEngine] = None) -> None:
    """Start the scheduler (blocking)."""
    engine = engine or get_engine()
    scheduler = create_scheduler(engine, blocking=True)

    logger.info("Starting Sale Discovery scheduler...")
    logger.info("Press Ctrl+C to stop")

    # Run initial cycle immediately
    logger.info("Running initial discovery cycle...")
    run_discovery_job(engine)

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


def serve(host: str = "0.0.0.0", port: int = 5000, engine: Optional[DiscoveryEngine] = None) -> None:
    """Run the background scheduler together with the admin server."""
    from .admin_server import create_app

    engine = engine or get_engine()
    scheduler = create_scheduler(engine, blocking=False)
    scheduler.start()

    try:
        create_app(engine).run(host=host, port=port)
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for the scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Sale Discovery Scheduler")
    parser.add_argument(
        "--mode",
        choices=["schedule", "once", "serve"],
        default="schedule",
        help="Mode to run: schedule (continuous), once (single cycle), serve (scheduler + admin server)"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Admin server host (serve mode)")
    parser.add_argument("--port", type=int, default=5000, help="Admin server port (serve mode)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.mode == "schedule":
        start_scheduler()
    elif args.mode == "once":
        logger.info("Running single discovery cycle...")
        get_engine().run_cycle()
    elif args.mode == "serve":
        serve(args.host, args.port)


if __name__ == "__main__":
    main()
