"""SQLAlchemy database models for the deposit clearance service."""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class JobLock(Base):
    """
    Persisted mutual-exclusion marker for a named background job.

    One row per job name. Acquire and release are single conditional
    UPDATE statements so concurrent ticks, in this process or another,
    never both hold the lock.
    """

    __tablename__ = "job_locks"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True
    )
    job_name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    job_metadata: Mapped[Dict[str, Any] | None] = mapped_column(
        "metadata", JsonType, nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "NOT is_locked OR locked_at IS NOT NULL", name="locked_requires_locked_at"
        ),
    )

    def __repr__(self) -> str:
        """String representation of JobLock."""
        return f"<JobLock(job_name={self.job_name}, is_locked={self.is_locked})>"


class VirtualAccount(Base):
    """
    Provider-issued virtual bank account owned by a user.

    Deposits into an inactive account are not cleared.
    """

    __tablename__ = "virtual_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    account_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank_type: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    alias: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive')", name="valid_virtual_account_status"),
    )

    def __repr__(self) -> str:
        """String representation of VirtualAccount."""
        return (
            f"<VirtualAccount(account_number={self.account_number}, "
            f"user_id={self.user_id}, status={self.status})>"
        )


class Communication(Base):
    """
    Broadcast email history.

    Written once per send and immutable afterwards.
    """

    __tablename__ = "communications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    selected_tenants: Mapped[List[str] | None] = mapped_column(JsonType, nullable=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    sent_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    __table_args__ = (
        CheckConstraint(
            "recipient_type IN ('all', 'active', 'specific')", name="valid_recipient_type"
        ),
        CheckConstraint("recipient_count >= 0", name="non_negative_recipient_count"),
    )

    def __repr__(self) -> str:
        """String representation of Communication."""
        return (
            f"<Communication(id={self.id}, recipient_type={self.recipient_type}, "
            f"recipients={self.recipient_count})>"
        )


class Wallet(Base):
    """User wallet. Amounts are in minor units (kobo)."""

    __tablename__ = "wallets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cleared_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    locked_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        """String representation of Wallet."""
        return (
            f"<Wallet(id={self.id}, balance={self.balance}, "
            f"cleared_balance={self.cleared_balance})>"
        )


class Transaction(Base):
    """
    Wallet ledger entry.

    Successful credits start with clearance_status 'pending' and are moved to
    'cleared' by the deposit clearance sweep once they mature.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("wallets.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    virtual_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("virtual_accounts.id"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    reference: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    clearance_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    clears_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_transaction_amount"),
        CheckConstraint("type IN ('credit', 'debit')", name="valid_transaction_type"),
        CheckConstraint(
            "category IN ('deposit', 'transfer', 'withdrawal', 'refund', 'fee', 'settlement')",
            name="valid_transaction_category",
        ),
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')", name="valid_transaction_status"
        ),
        CheckConstraint(
            "clearance_status IN ('pending', 'cleared')", name="valid_clearance_status"
        ),
        Index("idx_transactions_clearance_scan", "clearance_status", "status", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Transaction."""
        return (
            f"<Transaction(reference={self.reference}, amount={self.amount}, "
            f"status={self.status}, clearance={self.clearance_status})>"
        )


class AuditLog(Base):
    """
    Audit trail of actions performed through audited endpoints.

    Immutable once written.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True
    )
    action: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False, default="system")
    actor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    target_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    target_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="success")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    __table_args__ = (
        CheckConstraint(
            "actor_type IN ('admin', 'user', 'system', 'anonymous')", name="valid_actor_type"
        ),
        CheckConstraint("status IN ('success', 'failure')", name="valid_audit_status"),
    )

    def __repr__(self) -> str:
        """String representation of AuditLog."""
        return f"<AuditLog(id={self.id}, action={self.action}, status={self.status})>"
