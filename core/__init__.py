"""Core deposit clearance and audit logic."""
from .audit import AuditActor, AuditService
from .cron_service import CronService
from .deposit_clearance import ClearanceError, DepositClearanceEngine
from .job_lock import JobLockError, JobLockManager

__all__ = [
    "AuditActor",
    "AuditService",
    "ClearanceError",
    "CronService",
    "DepositClearanceEngine",
    "JobLockError",
    "JobLockManager",
]
