"""Pytest configuration and shared fixtures."""

import os

# Settings require a database URL; tests run against in-memory SQLite
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# IMPORTANT: Monkey-patch UUID support for SQLite BEFORE importing any models
from sqlalchemy import TypeDecorator, String, event
from sqlalchemy.engine import Engine
from sqlalchemy.dialects import postgresql as pg_dialect
import uuid as uuid_module

# Create SQLite-compatible UUID type
class SQLiteUUID(TypeDecorator):
    """Platform-independent UUID type for tests."""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'sqlite':
            return dialect.type_descriptor(String(36))
        return dialect.type_descriptor(pg_dialect.UUID(as_uuid=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid_module.UUID):
            return str(value) if dialect.name == 'sqlite' else value
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid_module.UUID):
            return value
        return uuid_module.UUID(value)

# Replace PostgreSQL UUID with our SQLite-compatible version
pg_dialect.UUID = SQLiteUUID

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.main import app
from app.models import Account, AccountCategory, Balance, BalanceType, Family, PaymentType

# Test database URL: use StaticPool so in-memory SQLite shares one connection
# (NullPool creates a new connection per call, losing all tables each time)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite."""
    if hasattr(dbapi_conn, 'execute'):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def override_get_db(db_session: AsyncSession):
    """Override the get_db dependency."""

    async def _override_get_db():
        yield db_session

    return _override_get_db


@pytest_asyncio.fixture(scope="function")
async def async_client(override_get_db) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def family(db_session: AsyncSession) -> Family:
    """Create a test family."""
    fam = Family(id=uuid4(), name="Test Family")
    db_session.add(fam)
    await db_session.commit()
    await db_session.refresh(fam)
    return fam


@pytest_asyncio.fixture
async def other_family(db_session: AsyncSession) -> Family:
    """Create a second family for cross-family isolation tests."""
    fam = Family(id=uuid4(), name="Other Family")
    db_session.add(fam)
    await db_session.commit()
    await db_session.refresh(fam)
    return fam


@pytest.fixture
def make_debt_account(db_session: AsyncSession):
    """
    Factory for debt accounts.

    Defaults to a 100,000 loan at 6% over 120 months, anchored on the 15th,
    with auto-update on and no balance recorded yet.
    """

    async def _make(
        family: Family,
        name: str = "Mortgage",
        original_balance: Decimal = Decimal("100000"),
        apr_rate: Optional[Decimal] = Decimal("0.06"),
        term_months: Optional[int] = 120,
        remaining_months: Optional[int] = 120,
        monthly_payment: Optional[Decimal] = None,
        payment_type: PaymentType = PaymentType.FIXED,
        loan_start_date: Optional[date] = date(2024, 1, 15),
        auto_update_enabled: bool = True,
        last_auto_update: Optional[date] = None,
        category: AccountCategory = AccountCategory.DEBT,
    ) -> Account:
        account = Account(
            id=uuid4(),
            family_id=family.id,
            name=name,
            category=category,
            original_balance=original_balance,
            apr_rate=apr_rate,
            term_months=term_months,
            remaining_months=remaining_months,
            monthly_payment=monthly_payment,
            payment_type=payment_type,
            loan_start_date=loan_start_date,
            auto_update_enabled=auto_update_enabled,
            last_auto_update=last_auto_update,
        )
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _make


@pytest_asyncio.fixture
async def debt_account(make_debt_account, family: Family) -> Account:
    """A default debt account owned by ``family``."""
    return await make_debt_account(family)


@pytest.fixture
def add_balance(db_session: AsyncSession):
    """Factory appending a balance record to an account."""

    async def _add(
        account: Account,
        amount: Decimal,
        on: date,
        balance_type: BalanceType = BalanceType.MANUAL,
    ) -> Balance:
        balance = Balance(
            id=uuid4(),
            account_id=account.id,
            amount=amount,
            date=on,
            balance_type=balance_type,
        )
        db_session.add(balance)
        await db_session.commit()
        return balance

    return _add
