"""
CronService tests.

Covers the status snapshot, lock discipline per tick, failure handling and
the timer lifecycle.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.cron_service import DEPOSIT_CLEARANCE_JOB, CronService, describe_interval
from core.deposit_clearance import DepositClearanceEngine
from core.job_lock import JobLockError, JobLockManager
from database.models import Transaction, Wallet


def make_service(session_factory, **kwargs: Any) -> CronService:
    kwargs.setdefault("engine", DepositClearanceEngine(maturity_hours=24, batch_size=50))
    kwargs.setdefault("interval_seconds", 60)
    return CronService(session_factory=session_factory, **kwargs)


def empty_summary() -> Dict[str, Any]:
    return {
        "found": 0,
        "cleared": 0,
        "skipped": 0,
        "failed": 0,
        "cleared_amount": 0,
        "errors": [],
    }


class TestCronStatus:
    """Status snapshot shape and schedule description."""

    @pytest.mark.unit
    def test_initial_status(self, session_factory) -> None:
        service = make_service(session_factory)

        assert service.get_status() == {
            "is_running": False,
            "last_run": None,
            "last_error": None,
            "cron_schedule": "Every Minute",
        }

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "seconds, expected",
        [(60, "Every Minute"), (300, "Every 5 Minutes"), (45, "Every 45 Seconds")],
    )
    def test_describe_interval(self, seconds: int, expected: str) -> None:
        assert describe_interval(seconds) == expected

    @pytest.mark.unit
    def test_seconds_until_next_run_aligns_to_boundary(self, session_factory) -> None:
        service = make_service(session_factory)
        now = datetime(2026, 1, 6, 10, 0, 45, tzinfo=timezone.utc)

        assert service.seconds_until_next_run(now) == pytest.approx(15)

    @pytest.mark.unit
    def test_seconds_until_next_run_on_boundary_waits_full_interval(
        self, session_factory
    ) -> None:
        service = make_service(session_factory)
        now = datetime(2026, 1, 6, 10, 1, 0, tzinfo=timezone.utc)

        assert service.seconds_until_next_run(now) == pytest.approx(60)


class TestRunDepositClearance:
    """One tick of the clearance job."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tick_clears_deposits_and_releases_lock(self, session_factory, ledger) -> None:
        wallet = await ledger.wallet()
        txn = await ledger.transaction(wallet, amount=200_000)
        service = make_service(session_factory)

        summary = await service.run_deposit_clearance()

        assert summary["cleared"] == 1
        status = service.get_status()
        assert status["is_running"] is False
        assert status["last_run"] is not None
        assert status["last_error"] is None
        assert service.last_outcome == "completed"

        async with session_factory() as db:
            lock = await service.lock_manager.get(db)
        assert lock.job_name == DEPOSIT_CLEARANCE_JOB
        assert lock.is_locked is False
        assert lock.last_run_at is not None
        assert lock.job_metadata["cleared"] == 1

        refreshed = await ledger.reload(Transaction, txn.id)
        assert refreshed.clearance_status == "cleared"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tick_skipped_while_lock_held(self, session_factory, ledger) -> None:
        wallet = await ledger.wallet()
        txn = await ledger.transaction(wallet, amount=200_000)

        holder = JobLockManager(DEPOSIT_CLEARANCE_JOB, owner_id="other-instance")
        async with session_factory() as db:
            await holder.acquire(db)

        service = make_service(session_factory)
        summary = await service.run_deposit_clearance()

        assert summary is None
        assert service.last_outcome == "skipped"
        # A skipped tick leaves the status untouched
        assert service.get_status()["last_run"] is None
        assert service.get_status()["last_error"] is None

        refreshed = await ledger.reload(Transaction, txn.id)
        assert refreshed.clearance_status == "pending"
        refreshed_wallet = await ledger.reload(Wallet, wallet.id)
        assert refreshed_wallet.cleared_balance == 0

        async with session_factory() as db:
            lock = await holder.get(db)
        assert lock.is_locked is True
        assert lock.locked_by == "other-instance"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sweep_exception_records_error_and_releases_lock(
        self, session_factory
    ) -> None:
        engine = MagicMock()
        engine.maturity_hours = 24
        engine.run_sweep = AsyncMock(side_effect=RuntimeError("scan exploded"))
        service = make_service(session_factory, engine=engine)

        summary = await service.run_deposit_clearance()

        assert summary is None
        assert service.last_outcome == "failed"
        status = service.get_status()
        assert status["is_running"] is False
        assert status["last_error"] == "scan exploded"
        assert status["last_run"] is not None

        async with session_factory() as db:
            lock = await service.lock_manager.get(db)
        assert lock.is_locked is False
        assert lock.job_metadata["last_error"] == "scan exploded"

        # The next tick is not blocked by the failed one
        engine.run_sweep = AsyncMock(return_value=empty_summary())
        assert await service.run_deposit_clearance() == empty_summary()
        assert service.get_status()["last_error"] is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_per_transaction_failure_sets_last_error(self, session_factory) -> None:
        summary = empty_summary()
        summary.update(found=2, cleared=1, failed=1, errors=["Txn TXN-1: Wallet w-1 not found"])
        engine = MagicMock()
        engine.maturity_hours = 24
        engine.run_sweep = AsyncMock(return_value=summary)
        service = make_service(session_factory, engine=engine)

        result = await service.run_deposit_clearance()

        assert result == summary
        assert service.last_outcome == "completed"
        assert service.get_status()["last_error"] == "Txn TXN-1: Wallet w-1 not found"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_is_running_only_while_lock_held(self, session_factory) -> None:
        observed: Dict[str, Any] = {}
        service = make_service(session_factory)

        async def sweep(db: Any) -> Dict[str, Any]:
            observed["is_running"] = service.get_status()["is_running"]
            async with session_factory() as other:
                lock = await service.lock_manager.get(other)
            observed["lock_held"] = lock.is_locked
            return empty_summary()

        service.engine = MagicMock()
        service.engine.run_sweep = AsyncMock(side_effect=sweep)

        assert service.get_status()["is_running"] is False
        await service.run_deposit_clearance()

        assert observed == {"is_running": True, "lock_held": True}
        assert service.get_status()["is_running"] is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lock_store_failure_is_recorded(self, session_factory) -> None:
        lock_manager = MagicMock()
        lock_manager.job_name = DEPOSIT_CLEARANCE_JOB
        lock_manager.acquire = AsyncMock(side_effect=JobLockError("database unavailable"))
        lock_manager.release = AsyncMock(return_value=False)
        engine = MagicMock()
        engine.run_sweep = AsyncMock()
        service = make_service(session_factory, lock_manager=lock_manager, engine=engine)

        summary = await service.run_deposit_clearance()

        assert summary is None
        assert service.last_outcome == "failed"
        assert service.get_status()["last_error"] == "database unavailable"
        assert service.get_status()["is_running"] is False
        engine.run_sweep.assert_not_awaited()
        lock_manager.release.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_release_failure_does_not_escape(self, session_factory) -> None:
        service = make_service(session_factory)
        service.engine = MagicMock()
        service.engine.run_sweep = AsyncMock(return_value=empty_summary())
        service.lock_manager.release = AsyncMock(side_effect=JobLockError("release failed"))

        summary = await service.run_deposit_clearance()

        assert summary == empty_summary()
        assert service.get_status()["is_running"] is False
        assert service.get_status()["last_error"] == "release failed"

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_instances_clear_each_deposit_once(
        self, session_factory, ledger
    ) -> None:
        """
        Two service instances ticking at the same moment.

        Only one sweep runs; the deposit is credited exactly once.
        """
        wallet = await ledger.wallet()
        await ledger.transaction(wallet, amount=120_000)
        await ledger.transaction(wallet, amount=80_000, age_hours=30)

        services = [make_service(session_factory) for _ in range(3)]
        results = await asyncio.gather(*(s.run_deposit_clearance() for s in services))

        # A follow-up tick picks up anything a contended sweep left pending
        results.append(await services[0].run_deposit_clearance())

        summaries = [r for r in results if r is not None]
        assert sum(s["cleared"] for s in summaries) == 2

        refreshed_wallet = await ledger.reload(Wallet, wallet.id)
        assert refreshed_wallet.cleared_balance == 200_000

        async with session_factory() as db:
            lock = await services[0].lock_manager.get(db)
        assert lock.is_locked is False


class TestSchedulerLifecycle:
    """Timer start and stop."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_cancels(self, session_factory) -> None:
        service = make_service(session_factory)

        service.start_deposit_clearance_job()
        task = service._task
        service.start_deposit_clearance_job()

        assert service.is_scheduled is True
        assert service._task is task

        await service.stop()

        assert service.is_scheduled is False
        assert task.cancelled()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, session_factory) -> None:
        service = make_service(session_factory)

        await service.stop()

        assert service.is_scheduled is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timer_runs_ticks(self, session_factory) -> None:
        service = make_service(session_factory)
        service.seconds_until_next_run = MagicMock(return_value=0.01)
        ticked = asyncio.Event()

        async def fake_tick() -> None:
            ticked.set()

        service.run_deposit_clearance = AsyncMock(side_effect=fake_tick)

        service.start_deposit_clearance_job()
        await asyncio.wait_for(ticked.wait(), timeout=2)
        await service.stop()

        assert service.run_deposit_clearance.await_count >= 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timer_survives_failing_tick(self, session_factory) -> None:
        service = make_service(session_factory)
        service.seconds_until_next_run = MagicMock(return_value=0.01)
        calls = []
        second_tick = asyncio.Event()

        async def flaky_tick() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            second_tick.set()

        service.run_deposit_clearance = AsyncMock(side_effect=flaky_tick)

        service.start_deposit_clearance_job()
        await asyncio.wait_for(second_tick.wait(), timeout=2)
        await service.stop()

        assert len(calls) >= 2
        assert service.get_status()["last_error"] == "boom"
