"""Ledger store: persistence boundary for debt accounts and their balance history."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account, AccountCategory, PaymentType
from app.models.balance import Balance, BalanceType
from app.schemas.debt import (
    AccrualState,
    BalanceRecordCreate,
    DebtAccountState,
    PaymentHistoryEntry,
)
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class ConcurrentAccrualError(Exception):
    """Raised when an account's accrual state changed between read and write."""

    pass


class InvalidLoanTermsError(Exception):
    """Raised when a stored account holds loan terms or counters out of range."""

    def __init__(self, account_id: UUID, detail: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} has invalid loan terms: {detail}")


class LedgerStore(Protocol):
    """What the accrual engine and payment service need from storage."""

    async def get_account_with_current_balance(
        self, account_id: UUID
    ) -> Optional[DebtAccountState]: ...

    async def insert_balance_record(self, record: BalanceRecordCreate) -> UUID: ...

    async def update_accrual_state(self, account_id: UUID, state: AccrualState) -> None: ...

    async def record_accrual(
        self,
        record: BalanceRecordCreate,
        state: AccrualState,
        expected_last_accrual_date: Optional[date],
    ) -> UUID: ...

    async def list_eligible_debt_accounts(self, family_id: UUID) -> List[UUID]: ...

    async def list_debt_accounts(self, family_id: UUID) -> List[DebtAccountState]: ...

    async def list_families_with_eligible_debts(self) -> List[UUID]: ...

    async def record_payment(
        self, record: BalanceRecordCreate, remaining_months: Optional[int]
    ) -> UUID: ...

    async def list_payments(self, account_id: UUID, limit: int) -> List[PaymentHistoryEntry]: ...


def current_balance_subquery():
    """
    Correlated scalar subquery for an account's current balance.

    The current balance is the most recent record by effective date, ties
    broken by creation time. Every reader goes through this definition.
    """
    return (
        select(Balance.amount)
        .where(Balance.account_id == Account.id)
        .order_by(Balance.date.desc(), Balance.created_at.desc())
        .limit(1)
        .correlate(Account)
        .scalar_subquery()
    )


def eligible_debt_conditions() -> list:
    """Debt accounts the monthly batch should try to update."""
    return [
        Account.category == AccountCategory.DEBT,
        Account.auto_update_enabled.is_(True),
        Account.apr_rate.isnot(None),
        Account.remaining_months > 0,
    ]


def _to_state(account: Account, current_balance: Optional[Decimal]) -> DebtAccountState:
    try:
        return _build_state(account, current_balance)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidLoanTermsError(account.id, fields) from e


def _build_state(account: Account, current_balance: Optional[Decimal]) -> DebtAccountState:
    # Validated as one payload so errors carry the nested field path
    return DebtAccountState.model_validate(
        {
            "account_id": account.id,
            "family_id": account.family_id,
            "name": account.name,
            "category": account.category,
            "terms": {
                "principal": account.original_balance or Decimal("0"),
                "annual_rate": account.apr_rate,
                "term_months": account.term_months,
                "payment_type": account.payment_type or PaymentType.FIXED,
                "monthly_payment": account.monthly_payment,
                "anchor_date": account.loan_start_date,
                "auto_update_enabled": bool(account.auto_update_enabled),
            },
            "accrual_state": {
                "remaining_months": account.remaining_months,
                "last_accrual_date": account.last_auto_update,
            },
            "current_balance": current_balance,
        }
    )


class SQLAlchemyLedgerStore:
    """
    Ledger store backed by the application database.

    Every public write commits its own unit of work; a failed write is rolled
    back before the exception propagates.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account_with_current_balance(
        self, account_id: UUID
    ) -> Optional[DebtAccountState]:
        """
        Load an account's terms, counters and current balance (None if missing).

        Raises:
            InvalidLoanTermsError: If the stored terms or counters are out of range
        """
        result = await self.db.execute(
            select(Account, current_balance_subquery().label("current_balance")).where(
                Account.id == account_id
            )
            # Counters are written with bulk UPDATEs; never trust the identity map
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            return None
        account, current_balance = row
        return _to_state(account, current_balance)

    async def list_debt_accounts(self, family_id: UUID) -> List[DebtAccountState]:
        """
        All debt accounts of a family with their current balances, by name.

        Accounts whose stored terms are out of range are logged and left out.
        """
        result = await self.db.execute(
            select(Account, current_balance_subquery().label("current_balance"))
            .where(
                and_(
                    Account.family_id == family_id,
                    Account.category == AccountCategory.DEBT,
                )
            )
            .order_by(Account.name)
            .execution_options(populate_existing=True)
        )
        accounts = []
        for account, balance in result.all():
            try:
                accounts.append(_to_state(account, balance))
            except InvalidLoanTermsError as e:
                logger.warning(str(e))
        return accounts

    async def list_eligible_debt_accounts(self, family_id: UUID) -> List[UUID]:
        """IDs of a family's debt accounts with auto-update on, a rate and months left."""
        result = await self.db.execute(
            select(Account.id).where(and_(Account.family_id == family_id, *eligible_debt_conditions()))
        )
        return list(result.scalars().all())

    async def list_families_with_eligible_debts(self) -> List[UUID]:
        """Families owning at least one eligible debt account."""
        result = await self.db.execute(
            select(Account.family_id).where(and_(*eligible_debt_conditions())).distinct()
        )
        return list(result.scalars().all())

    async def insert_balance_record(self, record: BalanceRecordCreate) -> UUID:
        """Append one balance record."""
        try:
            balance = self._add_balance(record)
            await self.db.flush()
            await self.db.commit()
            return balance.id
        except Exception:
            await self.db.rollback()
            raise

    async def update_accrual_state(self, account_id: UUID, state: AccrualState) -> None:
        """Overwrite an account's accrual counters."""
        try:
            await self.db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(
                    last_auto_update=state.last_accrual_date,
                    remaining_months=state.remaining_months,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def record_accrual(
        self,
        record: BalanceRecordCreate,
        state: AccrualState,
        expected_last_accrual_date: Optional[date],
    ) -> UUID:
        """
        Append an automatic balance record and advance the counters atomically.

        The counter update is a compare-and-set on ``last_auto_update``: if
        another run already advanced the account, nothing is written and
        ConcurrentAccrualError is raised.

        Args:
            record: The AUTOMATIC balance record
            state: Counters after this accrual
            expected_last_accrual_date: ``last_auto_update`` as read before computing

        Returns:
            ID of the new balance record
        """
        if expected_last_accrual_date is None:
            guard = Account.last_auto_update.is_(None)
        else:
            guard = Account.last_auto_update == expected_last_accrual_date

        try:
            result = await self.db.execute(
                update(Account)
                .where(and_(Account.id == record.account_id, guard))
                .values(
                    last_auto_update=state.last_accrual_date,
                    remaining_months=state.remaining_months,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrentAccrualError(
                    f"Account {record.account_id} was updated by another run"
                )

            balance = self._add_balance(record)
            await self.db.flush()
            await self.db.commit()
            return balance.id
        except Exception:
            await self.db.rollback()
            raise

    async def record_payment(
        self, record: BalanceRecordCreate, remaining_months: Optional[int]
    ) -> UUID:
        """
        Append a payment record, optionally updating remaining months, in one commit.

        ``remaining_months`` of None leaves the counter untouched.
        """
        try:
            balance = self._add_balance(record)
            if remaining_months is not None:
                await self.db.execute(
                    update(Account)
                    .where(Account.id == record.account_id)
                    .values(remaining_months=remaining_months, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
            await self.db.flush()
            await self.db.commit()
            return balance.id
        except Exception:
            await self.db.rollback()
            raise

    async def list_payments(self, account_id: UUID, limit: int) -> List[PaymentHistoryEntry]:
        """Most recent payment records, newest first."""
        result = await self.db.execute(
            select(Balance)
            .where(
                and_(
                    Balance.account_id == account_id,
                    Balance.balance_type == BalanceType.PAYMENT,
                )
            )
            .order_by(Balance.date.desc(), Balance.created_at.desc())
            .limit(limit)
        )
        return [PaymentHistoryEntry.model_validate(b) for b in result.scalars().all()]

    def _add_balance(self, record: BalanceRecordCreate) -> Balance:
        balance = Balance(
            account_id=record.account_id,
            amount=record.amount,
            date=record.effective_date,
            balance_type=record.kind,
            interest_amount=record.interest_component,
            principal_amount=record.principal_component,
            payment_amount=record.payment_amount,
            notes=record.notes,
        )
        self.db.add(balance)
        logger.debug(
            "Queued %s balance for account %s on %s",
            record.kind.value,
            record.account_id,
            record.effective_date,
        )
        return balance
