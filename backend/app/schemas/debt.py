"""Debt schemas: loan terms, amortization schedules, accrual results and payments."""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from app.models.account import AccountCategory, PaymentType
from app.models.balance import BalanceType


class LoanTerms(BaseModel):
    """Static terms of a loan. Changed only by an explicit account edit."""

    principal: Decimal = Field(default=Decimal("0"), ge=0)
    annual_rate: Optional[Decimal] = Field(default=None, ge=0)  # Fraction, 0.05 = 5%
    term_months: Optional[int] = Field(default=None, ge=1)
    payment_type: PaymentType = PaymentType.FIXED
    monthly_payment: Optional[Decimal] = None
    anchor_date: Optional[date] = None  # Loan start; its day-of-month is the billing day
    auto_update_enabled: bool = False

    model_config = {"frozen": True}


class AccrualState(BaseModel):
    """Mutable auto-update counters of a debt account."""

    remaining_months: Optional[int] = Field(default=None, ge=0)
    last_accrual_date: Optional[date] = None


class DebtAccountState(BaseModel):
    """An account as read by the accrual engine: terms, counters and current balance."""

    account_id: UUID
    family_id: UUID
    name: str
    category: AccountCategory
    terms: LoanTerms
    accrual_state: AccrualState
    current_balance: Optional[Decimal] = None  # None when no balance was ever recorded

    @property
    def is_debt(self) -> bool:
        return self.category == AccountCategory.DEBT

    @property
    def effective_balance(self) -> Decimal:
        """Latest recorded balance, or the original principal before any was recorded."""
        if self.current_balance is None:
            return self.terms.principal
        return self.current_balance


class BalanceRecordCreate(BaseModel):
    """New entry for the balance ledger."""

    account_id: UUID
    amount: Decimal
    effective_date: date
    kind: BalanceType = BalanceType.MANUAL
    interest_component: Optional[Decimal] = None
    principal_component: Optional[Decimal] = None
    payment_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class AmortizationPayment(BaseModel):
    """One projected period of an amortization table."""

    period_index: int
    date: date
    principal_portion: Decimal
    interest_portion: Decimal
    total_payment: Decimal
    remaining_balance_after: Decimal
    cumulative_interest: Decimal
    cumulative_principal: Decimal


class AmortizationSchedule(BaseModel):
    """Forward amortization table starting this month."""

    account_id: Optional[UUID] = None
    account_name: Optional[str] = None
    original_balance: Decimal
    current_balance: Decimal
    annual_rate: Decimal
    monthly_rate: Decimal
    monthly_payment: Decimal
    payment_type: PaymentType
    remaining_months: int
    total_interest: Decimal
    total_payments: Decimal
    payments: List[AmortizationPayment]


class DebtSummary(BaseModel):
    """Read-only overview of one debt account."""

    account_id: UUID
    account_name: str
    current_balance: Decimal
    monthly_payment: Decimal
    interest_this_month: Decimal
    principal_this_month: Decimal
    payoff_date: Optional[date] = None
    total_interest_remaining: Decimal
    auto_update_enabled: bool
    last_auto_update: Optional[date] = None


class AccrualErrorCode(str, enum.Enum):
    """Why a monthly update did not apply."""

    ACCOUNT_NOT_FOUND = "account_not_found"
    NOT_ELIGIBLE = "not_eligible"
    MISSING_ANCHOR = "missing_anchor"
    NOT_YET_DUE = "not_yet_due"  # Informational: show a countdown, not an error
    CONCURRENT_UPDATE = "concurrent_update"
    STORAGE_FAILURE = "storage_failure"


class MonthlyUpdateResult(BaseModel):
    """Outcome of applying one month of interest to one account."""

    account_id: UUID
    success: bool
    new_balance: Optional[Decimal] = None
    interest_added: Optional[Decimal] = None
    due_date: Optional[date] = None
    error_code: Optional[AccrualErrorCode] = None
    error: Optional[str] = None
    days_until_due: Optional[int] = None

    @classmethod
    def applied(
        cls, account_id: UUID, new_balance: Decimal, interest_added: Decimal, due_date: date
    ) -> "MonthlyUpdateResult":
        return cls(
            account_id=account_id,
            success=True,
            new_balance=new_balance,
            interest_added=interest_added,
            due_date=due_date,
        )

    @classmethod
    def failed(
        cls,
        account_id: UUID,
        error_code: AccrualErrorCode,
        error: str,
        **kwargs,
    ) -> "MonthlyUpdateResult":
        return cls(account_id=account_id, success=False, error_code=error_code, error=error, **kwargs)


class AccrualFailure(BaseModel):
    """One account's failure inside a batch run (no account when the listing itself failed)."""

    account_id: Optional[UUID] = None
    error_code: AccrualErrorCode
    error: str


class FamilyUpdateResult(BaseModel):
    """Aggregate outcome of a family's batch run."""

    family_id: UUID
    updated_count: int = 0
    not_due_count: int = 0
    errors: List[AccrualFailure] = []


class PaymentKind(str, enum.Enum):
    """How a recorded payment splits between principal and interest."""

    PRINCIPAL = "principal"
    INTEREST = "interest"
    MIXED = "mixed"


class ManualPaymentCreate(BaseModel):
    """Payment made by a family member against a debt."""

    amount: Decimal = Field(gt=0)
    date: date
    payment_type: PaymentKind = PaymentKind.MIXED
    principal_amount: Optional[Decimal] = Field(default=None, ge=0)
    interest_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class ManualPaymentResult(BaseModel):
    """Balance after a recorded payment."""

    account_id: UUID
    new_balance: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    total_paid: Decimal
    remaining_months: Optional[int] = None


class PaymentHistoryEntry(BaseModel):
    """Payment record as shown in the payment history."""

    date: date
    balance: Decimal = Field(validation_alias=AliasChoices("amount", "balance"))  # Balance after the payment
    payment_amount: Optional[Decimal] = None
    principal_amount: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    balance_type: BalanceType
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AmortizationOverview(BaseModel):
    """Everything the amortization view needs for one account."""

    account: DebtAccountState
    current_balance: Decimal
    schedule: Optional[AmortizationSchedule] = None
    next_payment: Optional[AmortizationPayment] = None
