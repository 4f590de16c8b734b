"""
Deposit clearance engine.

Moves matured deposits from pending to cleared and credits the wallet's
cleared balance. A deposit matures once its explicit ``clears_at`` has passed
or, when none was set, once it is older than the maturity window (24 hours by
default). Each deposit is cleared in its own database transaction so one
failure never aborts the rest of the batch.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import Row, and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.models import Transaction, VirtualAccount, Wallet, utcnow
from monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CLEARABLE_CATEGORIES = ("deposit", "transfer")


class ClearanceError(Exception):
    """Raised when a single transaction cannot be cleared."""

    def __init__(self, reference: str, message: str):
        super().__init__(message)
        self.reference = reference


class DepositClearanceEngine:
    """
    Finds matured pending deposits and clears them.

    Eligible transactions are successful credits in a clearable category
    whose clearance is still pending. Deposits attached to an inactive
    virtual account are left alone until the account is reactivated.
    """

    def __init__(
        self,
        maturity_hours: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        """
        Initialize clearance engine.

        Args:
            maturity_hours: Hours before a deposit without ``clears_at`` matures
            batch_size: Max transactions examined per sweep
        """
        settings = get_settings()
        self.maturity_hours = (
            settings.deposit_maturity_hours if maturity_hours is None else maturity_hours
        )
        self.batch_size = batch_size or settings.deposit_clearance_batch_size

    async def find_matured(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> List[Row[Any]]:
        """
        Fetch deposits ready for clearance, oldest first.

        Rows are plain column tuples so they stay usable after the
        per-transaction rollbacks in ``clear_transaction``.

        Args:
            db: Database session
            now: Reference time (defaults to the current UTC time)

        Returns:
            List[Row]: Rows with id, reference, wallet_id and amount
        """
        now = now or utcnow()
        cutoff = now - timedelta(hours=self.maturity_hours)

        stmt = (
            select(
                Transaction.id,
                Transaction.reference,
                Transaction.wallet_id,
                Transaction.amount,
            )
            .outerjoin(VirtualAccount, Transaction.virtual_account_id == VirtualAccount.id)
            .where(
                Transaction.type == "credit",
                Transaction.category.in_(CLEARABLE_CATEGORIES),
                Transaction.status == "success",
                Transaction.clearance_status == "pending",
                or_(
                    Transaction.clears_at <= now,
                    and_(Transaction.clears_at.is_(None), Transaction.created_at <= cutoff),
                ),
                or_(
                    Transaction.virtual_account_id.is_(None),
                    VirtualAccount.status == "active",
                ),
            )
            .order_by(Transaction.created_at)
            .limit(self.batch_size)
        )
        result = await db.execute(stmt)
        return list(result.all())

    async def clear_transaction(
        self, db: AsyncSession, candidate: Row[Any], now: Optional[datetime] = None
    ) -> bool:
        """
        Clear one deposit and credit its wallet in a single transaction.

        Args:
            db: Database session
            candidate: Row from ``find_matured``
            now: Clearance timestamp (defaults to the current UTC time)

        Returns:
            bool: True if cleared, False if it was already cleared elsewhere

        Raises:
            ClearanceError: If the wallet is missing or the database fails
        """
        now = now or utcnow()
        try:
            # Only flips rows still pending, so a deposit is credited once
            claim = await db.execute(
                update(Transaction)
                .where(
                    Transaction.id == candidate.id,
                    Transaction.clearance_status == "pending",
                )
                .values(clearance_status="cleared", cleared_at=now)
                .execution_options(synchronize_session=False)
            )
            if claim.rowcount != 1:
                await db.rollback()
                logger.warning(
                    "deposit_already_cleared",
                    reference=candidate.reference,
                )
                return False

            credit = await db.execute(
                update(Wallet)
                .where(Wallet.id == candidate.wallet_id)
                .values(
                    cleared_balance=Wallet.cleared_balance + candidate.amount,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if credit.rowcount != 1:
                await db.rollback()
                logger.error(
                    "deposit_wallet_not_found",
                    reference=candidate.reference,
                    wallet_id=str(candidate.wallet_id),
                )
                raise ClearanceError(
                    candidate.reference, f"Wallet {candidate.wallet_id} not found"
                )

            await db.commit()

        except ClearanceError:
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "deposit_clearance_error",
                reference=candidate.reference,
                error=str(e),
            )
            raise ClearanceError(candidate.reference, str(e)) from e

        logger.info(
            "deposit_cleared",
            reference=candidate.reference,
            amount=candidate.amount,
            amount_naira=candidate.amount / 100,
        )
        return True

    async def run_sweep(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Clear every matured deposit in one batch.

        Args:
            db: Database session
            now: Reference time (defaults to the current UTC time)

        Returns:
            Dict[str, Any]: Counts of found, cleared, skipped and failed
                transactions plus per-transaction error messages
        """
        now = now or utcnow()
        candidates = await self.find_matured(db, now)

        summary: Dict[str, Any] = {
            "found": len(candidates),
            "cleared": 0,
            "skipped": 0,
            "failed": 0,
            "cleared_amount": 0,
            "errors": [],
        }

        if not candidates:
            return summary

        logger.info("deposit_clearance_batch_found", count=len(candidates))

        for candidate in candidates:
            try:
                if await self.clear_transaction(db, candidate, now):
                    summary["cleared"] += 1
                    summary["cleared_amount"] += candidate.amount
                    metrics.record_deposit_cleared(candidate.amount)
                else:
                    summary["skipped"] += 1
            except ClearanceError as e:
                summary["failed"] += 1
                summary["errors"].append(f"Txn {e.reference}: {str(e)}")
                metrics.record_clearance_failure()

        logger.info(
            "deposit_clearance_batch_processed",
            found=summary["found"],
            cleared=summary["cleared"],
            skipped=summary["skipped"],
            failed=summary["failed"],
        )
        return summary
