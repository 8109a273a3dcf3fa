"""FastAPI dependencies for the debt services."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.services.debt_accrual_service import DebtAccrualService
from app.services.debt_payment_service import DebtPaymentService
from app.services.ledger_store import SQLAlchemyLedgerStore


async def get_ledger_store(db: AsyncSession = Depends(get_db)) -> SQLAlchemyLedgerStore:
    """Ledger store bound to the request's database session."""
    return SQLAlchemyLedgerStore(db)


async def get_accrual_service(
    store: SQLAlchemyLedgerStore = Depends(get_ledger_store),
) -> DebtAccrualService:
    return DebtAccrualService(store)


async def get_payment_service(
    store: SQLAlchemyLedgerStore = Depends(get_ledger_store),
) -> DebtPaymentService:
    return DebtPaymentService(store)
