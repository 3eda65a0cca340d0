"""Main entry point for the weekly target adaptation job"""
import argparse
import asyncio
import logging

from prometheus_client import start_http_server

from fitquest.config import ADAPTATION_CONCURRENCY, ENABLE_METRICS, LOG_LEVEL, METRICS_PORT, validate_config
from fitquest.db.connection import db
from fitquest.scheduler.adaptation_job import run_weekly_adaptation

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recalibrate adaptive quest targets")
    parser.add_argument(
        "--user",
        dest="user_ids",
        action="append",
        help="Only adapt this user's targets (repeatable; default: all users with targets)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=ADAPTATION_CONCURRENCY,
        help="Users processed concurrently",
    )
    parser.add_argument(
        "--interval-hours",
        type=float,
        default=None,
        help="Repeat the job at this interval instead of running once",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main application entry point"""
    args = parse_args(argv)
    exit_code = 0

    try:
        # Validate configuration
        logger.info("Validating configuration...")
        validate_config()

        if ENABLE_METRICS:
            logger.info(f"Serving Prometheus metrics on port {METRICS_PORT}")
            start_http_server(METRICS_PORT)

        # Initialize database
        logger.info("Initializing database connection pool...")
        await db.init_pool()

        while True:
            summary = await run_weekly_adaptation(args.user_ids, concurrency=args.concurrency)
            if summary.users_failed:
                exit_code = 1

            if args.interval_hours is None:
                break

            logger.info(f"Next adaptation run in {args.interval_hours} hours")
            await asyncio.sleep(args.interval_hours * 3600)

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        logger.info("Closing database connection...")
        await db.close_pool()

        logger.info("Shutdown complete")

    return exit_code


def run() -> None:
    """Console script entry point"""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
