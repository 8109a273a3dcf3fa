"""Monthly interest accrual for debt accounts."""

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from app.core.logging_config import debt_log_context, get_logger
from app.models.balance import BalanceType
from app.schemas.debt import (
    AccrualErrorCode,
    AccrualFailure,
    AccrualState,
    AmortizationOverview,
    BalanceRecordCreate,
    DebtAccountState,
    DebtSummary,
    FamilyUpdateResult,
    MonthlyUpdateResult,
)
from app.services.amortization_service import AmortizationService
from app.services.ledger_store import ConcurrentAccrualError, InvalidLoanTermsError, LedgerStore
from app.utils.datetime_utils import add_months_clamped, add_one_month_clamped, billing_date

logger = logging.getLogger(__name__)
event_logger = get_logger(__name__)


class DebtAccrualService:
    """
    Applies one month of interest to debt accounts on their billing day.

    Auto-update is accrual only: interest is added to the balance and no
    payment is deducted. Payments are recorded separately.
    """

    def __init__(self, store: LedgerStore, clock: Callable[[], date] = date.today):
        self.store = store
        self.clock = clock

    @staticmethod
    def next_due_date(anchor_date: date, last_accrual_date: Optional[date], today: date) -> date:
        """
        Next billing date on which interest may be applied.

        After a previous accrual this is the following month's billing day.
        For the first accrual it is this month's billing day once reached,
        otherwise next month's.
        """
        if last_accrual_date is not None:
            return add_one_month_clamped(last_accrual_date, anchor_date.day)

        this_month = billing_date(today.year, today.month, anchor_date.day)
        if today >= this_month:
            return this_month
        return add_one_month_clamped(today, anchor_date.day)

    async def apply_monthly_update(self, account_id: UUID) -> MonthlyUpdateResult:
        """
        Apply this period's interest to one account if it is due.

        Returns:
            Applied result with the new balance, or a failure carrying an
            ``AccrualErrorCode``. ``NOT_YET_DUE`` also carries the countdown.
        """
        with debt_log_context(account_id=account_id):
            return await self._apply_monthly_update(account_id)

    async def _apply_monthly_update(self, account_id: UUID) -> MonthlyUpdateResult:
        try:
            account = await self.store.get_account_with_current_balance(account_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to load account {account_id} for monthly update")
            return MonthlyUpdateResult.failed(account_id, AccrualErrorCode.STORAGE_FAILURE, str(e))
        except InvalidLoanTermsError as e:
            logger.warning(str(e))
            return MonthlyUpdateResult.failed(account_id, AccrualErrorCode.NOT_ELIGIBLE, str(e))

        if account is None or not account.is_debt:
            return MonthlyUpdateResult.failed(
                account_id, AccrualErrorCode.ACCOUNT_NOT_FOUND, "Debt account not found"
            )

        terms = account.terms
        if not terms.auto_update_enabled or terms.annual_rate is None:
            return MonthlyUpdateResult.failed(
                account_id,
                AccrualErrorCode.NOT_ELIGIBLE,
                "Account not eligible for auto-updates",
            )

        if terms.anchor_date is None:
            return MonthlyUpdateResult.failed(
                account_id, AccrualErrorCode.MISSING_ANCHOR, "Loan start date not set"
            )

        today = self.clock()
        state = account.accrual_state
        due = self.next_due_date(terms.anchor_date, state.last_accrual_date, today)

        if today < due:
            days_until_due = (due - today).days
            return MonthlyUpdateResult.failed(
                account_id,
                AccrualErrorCode.NOT_YET_DUE,
                f"Next payment due in {days_until_due} days ({due.isoformat()})",
                days_until_due=days_until_due,
                due_date=due,
            )

        balance = account.effective_balance
        interest = balance * AmortizationService.monthly_rate(terms.annual_rate)
        new_balance = balance + interest

        record = BalanceRecordCreate(
            account_id=account_id,
            amount=new_balance,
            effective_date=due,
            kind=BalanceType.AUTOMATIC,
            interest_component=interest,
            notes=(
                f"Automatic monthly interest applied on {due.isoformat()}: "
                f"{terms.annual_rate * 100:.2f}% APR"
            ),
        )
        new_state = AccrualState(
            remaining_months=max(0, (state.remaining_months or 0) - 1),
            last_accrual_date=due,
        )

        try:
            await self.store.record_accrual(
                record, new_state, expected_last_accrual_date=state.last_accrual_date
            )
        except ConcurrentAccrualError as e:
            logger.warning(f"Monthly update for account {account_id} lost a concurrent race")
            return MonthlyUpdateResult.failed(account_id, AccrualErrorCode.CONCURRENT_UPDATE, str(e))
        except SQLAlchemyError as e:
            logger.exception(f"Failed to store monthly update for account {account_id}")
            return MonthlyUpdateResult.failed(account_id, AccrualErrorCode.STORAGE_FAILURE, str(e))

        event_logger.info(
            "debt_update_applied",
            due_date=due.isoformat(),
            previous_balance=str(balance),
            interest_added=str(interest),
            new_balance=str(new_balance),
            remaining_months=new_state.remaining_months,
        )
        return MonthlyUpdateResult.applied(account_id, new_balance, interest, due)

    async def run_monthly_updates_for_family(self, family_id: UUID) -> FamilyUpdateResult:
        """
        Apply monthly updates to every eligible debt account of a family.

        Accounts are processed one after another and independently: a failure
        on one is recorded and the loop moves on. Accounts that are simply not
        due yet are counted separately from errors.
        """
        with debt_log_context(family_id=family_id):
            return await self._run_monthly_updates_for_family(family_id)

    async def _run_monthly_updates_for_family(self, family_id: UUID) -> FamilyUpdateResult:
        result = FamilyUpdateResult(family_id=family_id)

        try:
            account_ids = await self.store.list_eligible_debt_accounts(family_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to list eligible debt accounts for family {family_id}")
            result.errors.append(
                AccrualFailure(error_code=AccrualErrorCode.STORAGE_FAILURE, error=str(e))
            )
            return result

        for account_id in account_ids:
            with debt_log_context(account_id=account_id):
                try:
                    update = await self.apply_monthly_update(account_id)
                except Exception as e:
                    logger.exception(f"Unexpected error updating account {account_id}")
                    update = MonthlyUpdateResult.failed(
                        account_id, AccrualErrorCode.STORAGE_FAILURE, str(e)
                    )

                if update.success:
                    result.updated_count += 1
                elif update.error_code == AccrualErrorCode.NOT_YET_DUE:
                    result.not_due_count += 1
                else:
                    event_logger.warning(
                        "debt_update_failed",
                        error_code=update.error_code.value,
                        error=update.error,
                    )
                    result.errors.append(
                        AccrualFailure(
                            account_id=account_id,
                            error_code=update.error_code,
                            error=update.error or "",
                        )
                    )

        event_logger.info(
            "family_debt_updates_completed",
            updated_count=result.updated_count,
            not_due_count=result.not_due_count,
            error_count=len(result.errors),
        )
        return result

    async def get_debt_summaries(self, family_id: UUID) -> List[DebtSummary]:
        """Read-only overview of every debt account of a family."""
        today = self.clock()
        accounts = await self.store.list_debt_accounts(family_id)
        summaries = []

        for account in accounts:
            terms = account.terms
            balance = account.effective_balance
            remaining = account.accrual_state.remaining_months

            schedule = AmortizationService.generate_amortization_schedule(
                terms, balance, remaining, today=today
            )
            next_payment = AmortizationService.calculate_next_payment(
                terms, balance, remaining, today=today
            )

            if terms.monthly_payment:
                monthly_payment = terms.monthly_payment
            elif schedule is not None:
                monthly_payment = schedule.monthly_payment
            else:
                monthly_payment = Decimal(0)

            summaries.append(
                DebtSummary(
                    account_id=account.account_id,
                    account_name=account.name,
                    current_balance=balance,
                    monthly_payment=monthly_payment,
                    interest_this_month=next_payment.interest_portion if next_payment else Decimal(0),
                    principal_this_month=next_payment.principal_portion if next_payment else Decimal(0),
                    payoff_date=add_months_clamped(today, remaining) if remaining else None,
                    total_interest_remaining=schedule.total_interest if schedule else Decimal(0),
                    auto_update_enabled=terms.auto_update_enabled,
                    last_auto_update=account.accrual_state.last_accrual_date,
                )
            )

        return summaries

    async def get_debt_account(self, account_id: UUID, family_id: UUID) -> Optional[DebtAccountState]:
        """Load a debt account if it belongs to the family.

        Raises:
            InvalidLoanTermsError: If the stored terms or counters are out of range
        """
        account = await self.store.get_account_with_current_balance(account_id)
        if account is None or account.family_id != family_id or not account.is_debt:
            return None
        return account

    async def get_amortization_overview(
        self, account_id: UUID, family_id: UUID
    ) -> Optional[AmortizationOverview]:
        """Terms, schedule and next payment of one debt account (None if not the family's debt)."""
        account = await self.get_debt_account(account_id, family_id)
        if account is None:
            return None

        today = self.clock()
        balance = account.effective_balance
        remaining = account.accrual_state.remaining_months

        return AmortizationOverview(
            account=account,
            current_balance=balance,
            schedule=AmortizationService.generate_amortization_schedule(
                account.terms,
                balance,
                remaining,
                today=today,
                account_id=account.account_id,
                account_name=account.name,
            ),
            next_payment=AmortizationService.calculate_next_payment(
                account.terms, balance, remaining, today=today
            ),
        )
