"""Service for recording manual payments against debt accounts."""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from app.config import settings
from app.models.balance import BalanceType
from app.schemas.debt import (
    BalanceRecordCreate,
    DebtAccountState,
    ManualPaymentCreate,
    ManualPaymentResult,
    PaymentHistoryEntry,
    PaymentKind,
)
from app.services.amortization_service import AmortizationService
from app.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class DebtAccountNotFoundError(Exception):
    """Raised when an account is missing, belongs to another family, or is not a debt."""

    pass


class DebtPaymentService:
    """Records payments and reads payment history for debt accounts."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def _get_debt_account(self, account_id: UUID, family_id: UUID) -> DebtAccountState:
        account = await self.store.get_account_with_current_balance(account_id)
        if account is None or account.family_id != family_id or not account.is_debt:
            raise DebtAccountNotFoundError(f"Debt account {account_id} not found")
        return account

    @staticmethod
    def split_payment(
        account: DebtAccountState, payment: ManualPaymentCreate
    ) -> Tuple[Decimal, Decimal]:
        """
        Split a payment into (principal, interest).

        A MIXED payment without an explicit split follows next month's
        projected split, scaled to the amount paid. Principal never exceeds
        the current balance.
        """
        balance = account.effective_balance
        principal = payment.principal_amount
        interest = payment.interest_amount

        if payment.payment_type == PaymentKind.PRINCIPAL:
            principal = min(payment.amount, balance)
            interest = Decimal(0)
        elif payment.payment_type == PaymentKind.INTEREST:
            principal = Decimal(0)
            interest = payment.amount
        elif account.terms.annual_rate and (principal is None or interest is None):
            next_payment = AmortizationService.calculate_next_payment(
                account.terms, balance, account.accrual_state.remaining_months
            )
            if next_payment is not None and next_payment.total_payment > 0:
                ratio = payment.amount / next_payment.total_payment
                if principal is None:
                    principal = min(max(next_payment.principal_portion * ratio, Decimal(0)), balance)
                if interest is None:
                    interest = payment.amount - principal

        principal = min(principal or Decimal(0), balance)
        interest = interest or Decimal(0)
        return principal, interest

    @staticmethod
    def reduced_remaining_months(
        account: DebtAccountState, principal_paid: Decimal
    ) -> Optional[int]:
        """
        Remaining months after an extra principal payment.

        Each full monthly payment's worth of principal takes one month off.
        Returns None when the counter should be left alone.
        """
        remaining = account.accrual_state.remaining_months
        monthly_payment = account.terms.monthly_payment
        if principal_paid <= 0 or not remaining or not monthly_payment or monthly_payment <= 0:
            return None

        months_reduced = int(principal_paid // monthly_payment)
        return max(0, remaining - months_reduced)

    async def record_payment(
        self, account_id: UUID, family_id: UUID, payment: ManualPaymentCreate
    ) -> ManualPaymentResult:
        """
        Record a payment against a debt account.

        The balance drops by the principal part only. The payment record and
        the remaining-months update are stored together.

        Raises:
            DebtAccountNotFoundError: If the account is not one of the family's debts
        """
        account = await self._get_debt_account(account_id, family_id)
        balance = account.effective_balance

        principal, interest = self.split_payment(account, payment)
        new_balance = max(Decimal(0), balance - principal)
        remaining_months = self.reduced_remaining_months(account, principal)

        record = BalanceRecordCreate(
            account_id=account_id,
            amount=new_balance,
            effective_date=payment.date,
            kind=BalanceType.PAYMENT,
            interest_component=interest,
            principal_component=principal,
            payment_amount=payment.amount,
            notes=payment.notes or f"Payment: {principal:.2f} principal, {interest:.2f} interest",
        )
        await self.store.record_payment(record, remaining_months)

        logger.info(
            f"Recorded payment of {payment.amount} on account {account_id}: "
            f"principal {principal}, interest {interest}, new balance {new_balance}"
        )

        return ManualPaymentResult(
            account_id=account_id,
            new_balance=new_balance,
            principal_paid=principal,
            interest_paid=interest,
            total_paid=payment.amount,
            remaining_months=(
                remaining_months
                if remaining_months is not None
                else account.accrual_state.remaining_months
            ),
        )

    async def list_payments(self, account_id: UUID, family_id: UUID) -> List[PaymentHistoryEntry]:
        """
        Most recent payments on a debt account, newest first.

        Raises:
            DebtAccountNotFoundError: If the account is not one of the family's debts
        """
        await self._get_debt_account(account_id, family_id)
        return await self.store.list_payments(account_id, settings.PAYMENT_HISTORY_LIMIT)
