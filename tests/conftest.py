"""
Pytest configuration and fixtures.

Tests run against a throwaway SQLite file per test so that separate sessions
behave like separate connections to a shared database.
"""
import os
import uuid
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Optional

# Keep the API from starting its own scheduler when api.main is imported
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("APP_ENV", "test")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config import get_settings
from database.immutability import register_immutability_listeners
from database.models import Base, Transaction, VirtualAccount, Wallet, utcnow


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast tests with no shared state")
    config.addinivalue_line("markers", "race: concurrency and locking scenarios")
    config.addinivalue_line("markers", "integration: tests through the HTTP API")


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Any:
    """Settings are cached; make every test see its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database_url(tmp_path: Any) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest_asyncio.fixture
async def db_engine(database_url: str) -> AsyncGenerator[AsyncEngine, Any]:
    """Create test engine with a fresh schema."""
    engine = create_async_engine(
        database_url,
        poolclass=NullPool,
        connect_args={"timeout": 15},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    register_immutability_listeners()

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


class LedgerFactory:
    """Creates wallets, virtual accounts and transactions for tests."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def wallet(self, cleared_balance: int = 0, balance: int = 0) -> Wallet:
        wallet = Wallet(
            user_id=uuid.uuid4(), balance=balance, cleared_balance=cleared_balance
        )
        async with self.session_factory() as db:
            db.add(wallet)
            await db.commit()
        return wallet

    async def virtual_account(self, user_id: uuid.UUID, status: str = "active") -> VirtualAccount:
        account = VirtualAccount(
            user_id=user_id,
            account_number=str(uuid.uuid4().int)[:10],
            account_name="Ada Okafor",
            bank_name="PalmPay",
            bank_type="palmpay",
            email="ada@example.com",
            status=status,
        )
        async with self.session_factory() as db:
            db.add(account)
            await db.commit()
        return account

    async def transaction(
        self,
        wallet: Wallet,
        amount: int = 500_000,
        age_hours: float = 25,
        category: str = "deposit",
        type: str = "credit",
        status: str = "success",
        clearance_status: str = "pending",
        clears_at: Optional[datetime] = None,
        virtual_account: Optional[VirtualAccount] = None,
        wallet_id: Optional[uuid.UUID] = None,
    ) -> Transaction:
        txn = Transaction(
            wallet_id=wallet_id or wallet.id,
            user_id=wallet.user_id,
            virtual_account_id=virtual_account.id if virtual_account else None,
            type=type,
            category=category,
            amount=amount,
            reference=f"TXN-{uuid.uuid4().hex[:12].upper()}",
            status=status,
            clearance_status=clearance_status,
            clears_at=clears_at,
            created_at=utcnow() - timedelta(hours=age_hours),
        )
        async with self.session_factory() as db:
            db.add(txn)
            await db.commit()
        return txn

    async def reload(self, model: Any, pk: Any) -> Any:
        async with self.session_factory() as db:
            return await db.get(model, pk)


@pytest.fixture
def ledger(session_factory: async_sessionmaker[AsyncSession]) -> LedgerFactory:
    return LedgerFactory(session_factory)
