"""
Prometheus metrics for the deposit clearance service.

Tracks:
- Clearance sweep outcomes and duration
- Deposits cleared (count and amount)
- Per-transaction clearance failures
- Job lock acquisitions
- Audit log writes
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Clearance sweep metrics
deposit_clearance_runs_total = Counter(
    "deposit_clearance_runs_total",
    "Total deposit clearance ticks",
    ["status"],  # completed, skipped, failed
)

deposit_clearance_duration_seconds = Histogram(
    "deposit_clearance_duration_seconds",
    "Deposit clearance sweep duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

deposit_clearance_last_run_timestamp = Gauge(
    "deposit_clearance_last_run_timestamp",
    "Timestamp of last completed deposit clearance sweep",
)

deposits_cleared_total = Counter(
    "deposits_cleared_total",
    "Total deposits moved to cleared",
)

deposits_cleared_amount = Counter(
    "deposits_cleared_amount_kobo",
    "Total amount of cleared deposits in minor units",
)

deposit_clearance_failures_total = Counter(
    "deposit_clearance_failures_total",
    "Total transactions that failed to clear",
)

# Lock metrics
job_lock_acquisitions_total = Counter(
    "job_lock_acquisitions_total",
    "Total job lock acquisition attempts",
    ["job_name", "status"],  # acquired, busy, error
)

job_lock_hold_duration_seconds = Histogram(
    "job_lock_hold_duration_seconds",
    "Job lock hold duration in seconds",
    ["job_name"],
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
)

# Audit metrics
audit_log_writes_total = Counter(
    "audit_log_writes_total",
    "Total audit log write attempts",
    ["status"],  # written, failed
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_clearance_run(status: str, duration_seconds: float = 0) -> None:
        """Record the outcome of one clearance tick."""
        deposit_clearance_runs_total.labels(status=status).inc()
        if status == "completed":
            deposit_clearance_duration_seconds.observe(duration_seconds)
            deposit_clearance_last_run_timestamp.set(time.time())

    @staticmethod
    def record_deposit_cleared(amount: int) -> None:
        """Record a cleared deposit."""
        deposits_cleared_total.inc()
        deposits_cleared_amount.inc(amount)

    @staticmethod
    def record_clearance_failure() -> None:
        """Record a transaction that failed to clear."""
        deposit_clearance_failures_total.inc()

    @staticmethod
    def record_job_lock(job_name: str, status: str) -> None:
        """Record a job lock acquisition attempt."""
        job_lock_acquisitions_total.labels(job_name=job_name, status=status).inc()

    @staticmethod
    def record_job_lock_held(job_name: str, duration_seconds: float) -> None:
        """Record how long a job lock was held."""
        job_lock_hold_duration_seconds.labels(job_name=job_name).observe(duration_seconds)

    @staticmethod
    def record_audit_write(status: str) -> None:
        """Record an audit log write."""
        audit_log_writes_total.labels(status=status).inc()


# Export singleton instance
metrics = MetricsCollector()
