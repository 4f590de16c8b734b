"""
Deposit clearance background worker.

Runs the clearance sweep outside the API process. Any number of workers and
API schedulers may run side by side; the job lock lets only one sweep
through per tick.
"""
import argparse
import asyncio
import signal
from typing import Any, Optional

import structlog

from core.cron_service import CronService
from database.connection import close_db
from monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_clearance_tick(cron_service: CronService) -> Optional[dict[str, Any]]:
    """
    Run one clearance tick and log its outcome.

    Args:
        cron_service: Scheduler whose lock and status are used

    Returns:
        Optional[dict[str, Any]]: Sweep summary, or None if skipped or failed
    """
    summary = await cron_service.run_deposit_clearance()

    if summary is None:
        logger.info(
            "deposit_clearance_tick_not_run",
            outcome=cron_service.last_outcome,
            last_error=cron_service.last_error,
        )
    elif summary["failed"]:
        logger.warning(
            "deposit_clearance_partial_failure",
            cleared=summary["cleared"],
            failed=summary["failed"],
            last_error=cron_service.last_error,
        )

    return summary


async def start_deposit_clearance_worker(
    interval_seconds: Optional[int] = None, once: bool = False
) -> None:
    """
    Start the deposit clearance worker.

    Ticks on interval boundaries until SIGINT or SIGTERM.

    Args:
        interval_seconds: Seconds between ticks (defaults to settings)
        once: Run a single tick immediately and exit
    """
    setup_logging()

    cron_service = CronService(interval_seconds=interval_seconds)
    logger.info(
        "deposit_clearance_worker_starting",
        schedule=cron_service.cron_schedule,
        owner_id=cron_service.lock_manager.owner_id,
    )

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("deposit_clearance_worker_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if once:
            await run_clearance_tick(cron_service)
            return

        while running:
            seconds_until = cron_service.seconds_until_next_run()

            # Sleep in short slices so shutdown signals are noticed
            while seconds_until > 0 and running:
                sleep_time = min(seconds_until, 1.0)
                await asyncio.sleep(sleep_time)
                seconds_until -= sleep_time

            if not running:
                break

            try:
                await run_clearance_tick(cron_service)
            except Exception as e:
                logger.error("deposit_clearance_execution_error", error=str(e))

    except Exception as e:
        logger.error("deposit_clearance_worker_error", error=str(e))
        raise
    finally:
        await close_db()
        logger.info("deposit_clearance_worker_stopped")


def positive_int(value: str) -> int:
    """argparse type for a strictly positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def main(argv: Optional[list[str]] = None) -> None:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Deposit clearance worker")
    parser.add_argument(
        "--interval",
        type=positive_int,
        default=None,
        help="Seconds between clearance sweeps (default: DEPOSIT_CLEARANCE_INTERVAL_SECONDS)",
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit"
    )
    args = parser.parse_args(argv)

    asyncio.run(start_deposit_clearance_worker(interval_seconds=args.interval, once=args.once))


if __name__ == "__main__":
    main()
