"""
Persisted job locks for background workers.

A lock is a row in ``job_locks`` keyed by job name. Acquisition and release
are single conditional UPDATE statements, so the database arbitrates between
concurrent ticks whether they run in this process or in another instance.
"""
import os
import socket
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import JobLock, utcnow

logger = structlog.get_logger(__name__)


class JobLockError(Exception):
    """Raised when the lock store cannot be read or written."""

    pass


def default_owner_id() -> str:
    """Identify this lock holder as host:pid:random."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class JobLockManager:
    """
    Acquire and release the lock for one named job.

    Contention is not an error: ``acquire`` returns False when another
    holder has the lock. ``JobLockError`` is raised only when the store
    itself fails.
    """

    def __init__(
        self,
        job_name: str,
        owner_id: Optional[str] = None,
        stale_after_seconds: Optional[int] = None,
    ):
        """
        Initialize lock manager.

        Args:
            job_name: Unique job name the lock row is keyed by
            owner_id: Identity written to ``locked_by`` (generated if omitted)
            stale_after_seconds: Take over locks held longer than this.
                None means a held lock is only freed by release or by hand.
        """
        self.job_name = job_name
        self.owner_id = owner_id or default_owner_id()
        self.stale_after_seconds = stale_after_seconds

    async def _ensure_lock_row(self, db: AsyncSession) -> None:
        """Create the lock row on first use."""
        stmt = select(JobLock.id).where(JobLock.job_name == self.job_name)
        if (await db.execute(stmt)).scalar_one_or_none() is not None:
            return

        db.add(JobLock(job_name=self.job_name, is_locked=False))
        try:
            await db.commit()
            logger.info("job_lock_created", job_name=self.job_name)
        except IntegrityError:
            # Another instance created it first
            await db.rollback()

    async def acquire(self, db: AsyncSession) -> bool:
        """
        Try to take the lock.

        Args:
            db: Database session

        Returns:
            bool: True if this manager now holds the lock

        Raises:
            JobLockError: If the lock store fails
        """
        try:
            await self._ensure_lock_row(db)

            now = utcnow()
            available = JobLock.is_locked.is_(False)
            if self.stale_after_seconds is not None:
                cutoff = now - timedelta(seconds=self.stale_after_seconds)
                # Never take over a lock this owner still holds
                available = or_(
                    available,
                    and_(
                        JobLock.is_locked.is_(True),
                        JobLock.locked_at < cutoff,
                        or_(JobLock.locked_by.is_(None), JobLock.locked_by != self.owner_id),
                    ),
                )

            stmt = (
                update(JobLock)
                .where(JobLock.job_name == self.job_name, available)
                .values(is_locked=True, locked_at=now, locked_by=self.owner_id)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("job_lock_acquire_error", job_name=self.job_name, error=str(e))
            raise JobLockError(f"Failed to acquire lock {self.job_name}: {str(e)}") from e

        acquired = result.rowcount == 1
        if acquired:
            logger.info("job_lock_acquired", job_name=self.job_name, owner=self.owner_id)
        else:
            logger.debug("job_lock_busy", job_name=self.job_name)
        return acquired

    async def release(
        self, db: AsyncSession, metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Release the lock if this manager still holds it.

        Args:
            db: Database session
            metadata: Optional summary stored on the lock row

        Returns:
            bool: True if the lock was released, False if it was not ours

        Raises:
            JobLockError: If the lock store fails
        """
        values: Dict[Any, Any] = {JobLock.is_locked: False, JobLock.last_run_at: utcnow()}
        if metadata is not None:
            values[JobLock.job_metadata] = metadata

        stmt = (
            update(JobLock)
            .where(
                JobLock.job_name == self.job_name,
                JobLock.is_locked.is_(True),
                JobLock.locked_by == self.owner_id,
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db.execute(stmt)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("job_lock_release_error", job_name=self.job_name, error=str(e))
            raise JobLockError(f"Failed to release lock {self.job_name}: {str(e)}") from e

        released = result.rowcount == 1
        if released:
            logger.info("job_lock_released", job_name=self.job_name)
        else:
            logger.warning(
                "job_lock_release_skipped",
                job_name=self.job_name,
                owner=self.owner_id,
                reason="lock not held by this owner",
            )
        return released

    async def get(self, db: AsyncSession) -> Optional[JobLock]:
        """
        Load the lock row.

        Args:
            db: Database session

        Returns:
            Optional[JobLock]: Lock row, or None before the first run
        """
        stmt = select(JobLock).where(JobLock.job_name == self.job_name)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
