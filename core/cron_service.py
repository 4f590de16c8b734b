"""
Scheduler for the deposit clearance job.

Each ``CronService`` owns its timer task and its status. Ticks within one
instance never overlap because the loop awaits each sweep before sleeping;
ticks across instances are kept apart by the persisted job lock.
"""
import asyncio
import time
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import get_settings
from core.deposit_clearance import DepositClearanceEngine
from core.job_lock import JobLockError, JobLockManager
from database.connection import get_session_factory
from database.models import utcnow
from monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

DEPOSIT_CLEARANCE_JOB = "deposit-clearance"


def describe_interval(seconds: int) -> str:
    """Render a sweep interval the way the status endpoint reports it."""
    if seconds == 60:
        return "Every Minute"
    if seconds % 60 == 0:
        return f"Every {seconds // 60} Minutes"
    return f"Every {seconds} Seconds"


class CronService:
    """
    Runs the deposit clearance sweep on a fixed cadence and reports its health.

    Per tick: acquire the job lock (skip silently if held), clear matured
    deposits, release the lock. The lock is released whatever happens during
    the sweep.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        engine: Optional[DepositClearanceEngine] = None,
        lock_manager: Optional[JobLockManager] = None,
        interval_seconds: Optional[int] = None,
    ):
        """
        Initialize cron service.

        Args:
            session_factory: Session factory (defaults to the application's)
            engine: Clearance engine (created from settings if not provided)
            lock_manager: Lock manager for the clearance job
            interval_seconds: Seconds between ticks
        """
        settings = get_settings()
        self._session_factory = session_factory
        self.engine = engine or DepositClearanceEngine()
        self.lock_manager = lock_manager or JobLockManager(
            DEPOSIT_CLEARANCE_JOB,
            stale_after_seconds=settings.job_lock_stale_after_seconds,
        )
        self.interval_seconds = interval_seconds or settings.deposit_clearance_interval_seconds
        self.cron_schedule = describe_interval(self.interval_seconds)

        self.is_running = False
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None
        # "completed", "skipped" or "failed" for the most recent tick
        self.last_outcome: Optional[str] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    @property
    def is_scheduled(self) -> bool:
        """Whether the recurring timer is active."""
        return self._task is not None and not self._task.done()

    def get_status(self) -> Dict[str, Any]:
        """
        Snapshot of the clearance job.

        Returns:
            Dict[str, Any]: is_running, last_run, last_error and cron_schedule
        """
        return {
            "is_running": self.is_running,
            "last_run": self.last_run,
            "last_error": self.last_error,
            "cron_schedule": self.cron_schedule,
        }

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        """
        Seconds until the next interval boundary.

        With the default 60-second interval ticks land on the minute, like a
        ``* * * * *`` cron entry.
        """
        now = now or utcnow()
        elapsed = now.timestamp() % self.interval_seconds
        return self.interval_seconds - elapsed

    def start_deposit_clearance_job(self) -> None:
        """
        Start the recurring clearance timer.

        Must be called from a running event loop. Calling it again while the
        timer is active does nothing.
        """
        if self.is_scheduled:
            logger.warning("deposit_clearance_job_already_scheduled")
            return

        self._task = asyncio.get_running_loop().create_task(
            self._run_loop(), name=DEPOSIT_CLEARANCE_JOB
        )
        logger.info(
            "deposit_clearance_job_scheduled",
            schedule=self.cron_schedule,
            maturity_hours=self.engine.maturity_hours,
        )

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight tick to unwind."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("deposit_clearance_job_stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.seconds_until_next_run())
            try:
                await self.run_deposit_clearance()
            except Exception as e:
                # Keep the timer alive; the next tick retries
                logger.error("deposit_clearance_tick_error", error=str(e))
                self.last_error = str(e)

    async def run_deposit_clearance(self) -> Optional[Dict[str, Any]]:
        """
        Run a single clearance tick.

        Returns:
            Optional[Dict[str, Any]]: Sweep summary, or None if the tick was
                skipped (lock held) or failed before the sweep started
        """
        job_name = self.lock_manager.job_name

        async with self.session_factory() as db:
            try:
                acquired = await self.lock_manager.acquire(db)
            except JobLockError as e:
                metrics.record_job_lock(job_name, "error")
                metrics.record_clearance_run("failed")
                self.last_error = str(e)
                self.last_outcome = "failed"
                # The conditional update may have landed before the failure
                await self._release_lock({"last_error": str(e)})
                return None

            if not acquired:
                metrics.record_job_lock(job_name, "busy")
                metrics.record_clearance_run("skipped")
                logger.debug("deposit_clearance_skipped", reason="lock_held")
                self.last_outcome = "skipped"
                return None

            metrics.record_job_lock(job_name, "acquired")
            self.is_running = True
            self.last_run = utcnow()
            self.last_error = None
            start_time = time.monotonic()
            summary: Optional[Dict[str, Any]] = None

            try:
                logger.info("deposit_clearance_started")
                summary = await self.engine.run_sweep(db)
                if summary["errors"]:
                    self.last_error = summary["errors"][-1]
                self.last_outcome = "completed"
                duration = time.monotonic() - start_time
                metrics.record_clearance_run("completed", duration)
                logger.info(
                    "deposit_clearance_completed",
                    cleared=summary["cleared"],
                    failed=summary["failed"],
                    duration_seconds=duration,
                )
            except Exception as e:
                metrics.record_clearance_run("failed")
                logger.error("deposit_clearance_failed", error=str(e))
                self.last_error = str(e)
                self.last_outcome = "failed"
            finally:
                await self._release_lock(self._lock_metadata(summary))
                metrics.record_job_lock_held(job_name, time.monotonic() - start_time)
                self.is_running = False

        return summary

    def _lock_metadata(self, summary: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"last_error": self.last_error}
        if summary is not None:
            metadata.update(
                found=summary["found"],
                cleared=summary["cleared"],
                skipped=summary["skipped"],
                failed=summary["failed"],
            )
        return metadata

    async def _release_lock(self, metadata: Dict[str, Any]) -> None:
        # Fresh session: the sweep's session may be unusable after a failure
        try:
            async with self.session_factory() as db:
                await self.lock_manager.release(db, metadata)
        except Exception as e:
            logger.error(
                "deposit_clearance_lock_release_failed",
                job_name=self.lock_manager.job_name,
                error=str(e),
            )
            self.last_error = str(e)
