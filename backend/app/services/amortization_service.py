"""Service for amortization calculations and debt payoff math."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from app.models.account import PaymentType
from app.schemas.debt import AmortizationPayment, AmortizationSchedule, LoanTerms
from app.utils.datetime_utils import add_months_clamped, add_one_month_clamped

# Balances at or below this are treated as paid off
PAYOFF_EPSILON = Decimal("0.01")


class AmortizationService:
    """
    Service for calculating loan amortization schedules.

    Pure and deterministic: no I/O, no rounding (callers round money for
    display), and no exceptions for ineligible input (``None`` is returned
    instead).
    """

    @staticmethod
    def monthly_rate(annual_rate: Decimal) -> Decimal:
        """Monthly interest rate for an annual rate given as a fraction."""
        return annual_rate / Decimal(12)

    @staticmethod
    def calculate_fixed_monthly_payment(
        principal: Decimal, annual_rate: Decimal, term_months: int
    ) -> Decimal:
        """
        Calculate monthly payment using the French (annuity) formula.

        Formula: M = P[r(1+r)^n]/[(1+r)^n-1]
        where:
        - M = monthly payment
        - P = principal
        - r = monthly interest rate (annual rate / 12)
        - n = number of payments

        Args:
            principal: Loan principal amount
            annual_rate: Annual interest rate as a fraction (e.g., 0.05 for 5%)
            term_months: Loan term in months

        Returns:
            Monthly payment amount (unrounded)
        """
        if principal <= 0 or term_months <= 0:
            return Decimal(0)

        if annual_rate == 0:
            # No interest, straight-line
            return principal / Decimal(term_months)

        monthly_rate = AmortizationService.monthly_rate(annual_rate)
        growth = (Decimal(1) + monthly_rate) ** term_months

        return principal * (monthly_rate * growth / (growth - Decimal(1)))

    @staticmethod
    def _resolve_monthly_payment(
        terms: LoanTerms, balance: Decimal, remaining_months: Optional[int]
    ) -> Decimal:
        """
        Monthly payment used for projections.

        A missing FIXED payment is re-amortized on the current balance over the
        remaining months, not on the original principal and term.
        """
        if terms.monthly_payment:
            return terms.monthly_payment
        if terms.payment_type == PaymentType.FIXED and remaining_months:
            return AmortizationService.calculate_fixed_monthly_payment(
                balance, terms.annual_rate, remaining_months
            )
        return Decimal(0)

    @staticmethod
    def generate_amortization_schedule(
        terms: LoanTerms,
        current_balance: Optional[Decimal],
        remaining_months: Optional[int],
        today: Optional[date] = None,
        account_id: Optional[UUID] = None,
        account_name: Optional[str] = None,
    ) -> Optional[AmortizationSchedule]:
        """
        Generate month-by-month amortization schedule starting this month.

        Args:
            terms: Loan terms
            current_balance: Latest recorded balance (falls back to principal when not positive)
            remaining_months: Months left on the loan
            today: Reference date (defaults to today)
            account_id: Echoed on the schedule
            account_name: Echoed on the schedule

        Returns:
            Schedule, or None when the rate or remaining months are unset
        """
        if terms.annual_rate is None or not remaining_months:
            return None

        if today is None:
            today = date.today()

        balance = (
            current_balance
            if current_balance is not None and current_balance > 0
            else terms.principal
        )
        monthly_rate = AmortizationService.monthly_rate(terms.annual_rate)
        monthly_payment = AmortizationService._resolve_monthly_payment(
            terms, balance, remaining_months
        )
        anchor_day = terms.anchor_date.day if terms.anchor_date else today.day

        payments = []
        remaining_balance = balance
        cumulative_interest = Decimal(0)
        cumulative_principal = Decimal(0)

        for period in range(1, remaining_months + 1):
            if remaining_balance <= PAYOFF_EPSILON:
                break

            interest_payment = remaining_balance * monthly_rate

            if terms.payment_type == PaymentType.INTEREST_ONLY:
                principal_payment = Decimal(0)
                total_payment = interest_payment
            else:
                total_payment = monthly_payment
                principal_payment = min(total_payment - interest_payment, remaining_balance)

                # Final payment clears whatever is left
                if remaining_balance - principal_payment < PAYOFF_EPSILON:
                    principal_payment = remaining_balance
                    total_payment = principal_payment + interest_payment

            remaining_balance -= principal_payment
            cumulative_interest += interest_payment
            cumulative_principal += principal_payment

            payments.append(
                AmortizationPayment(
                    period_index=period,
                    date=add_months_clamped(today, period - 1, anchor_day),
                    principal_portion=principal_payment,
                    interest_portion=interest_payment,
                    total_payment=total_payment,
                    remaining_balance_after=max(remaining_balance, Decimal(0)),
                    cumulative_interest=cumulative_interest,
                    cumulative_principal=cumulative_principal,
                )
            )

        return AmortizationSchedule(
            account_id=account_id,
            account_name=account_name,
            original_balance=terms.principal or balance,
            current_balance=balance,
            annual_rate=terms.annual_rate,
            monthly_rate=monthly_rate,
            monthly_payment=monthly_payment,
            payment_type=terms.payment_type,
            remaining_months=remaining_months,
            total_interest=cumulative_interest,
            total_payments=cumulative_interest + cumulative_principal,
            payments=payments,
        )

    @staticmethod
    def calculate_next_payment(
        terms: LoanTerms,
        current_balance: Decimal,
        remaining_months: Optional[int] = None,
        today: Optional[date] = None,
    ) -> Optional[AmortizationPayment]:
        """
        Project next month's payment split.

        Same interest/principal rules as the schedule, without the final-payment
        correction. A FIXED loan without a stored payment is re-amortized over
        ``remaining_months`` (or the full term when that is unknown); with no
        months left and no stored payment the projected payment is zero.

        Returns:
            Single-period projection, or None when the rate is unset
        """
        if terms.annual_rate is None:
            return None

        if today is None:
            today = date.today()

        interest_payment = current_balance * AmortizationService.monthly_rate(terms.annual_rate)

        if terms.payment_type == PaymentType.INTEREST_ONLY:
            principal_payment = Decimal(0)
            total_payment = interest_payment
        else:
            if remaining_months is None:
                remaining_months = terms.term_months
            total_payment = AmortizationService._resolve_monthly_payment(
                terms, current_balance, remaining_months
            )
            # No payment left to make (paid off, or nothing stored to derive from)
            if total_payment:
                principal_payment = min(total_payment - interest_payment, current_balance)
            else:
                principal_payment = Decimal(0)

        anchor_day = terms.anchor_date.day if terms.anchor_date else today.day

        return AmortizationPayment(
            period_index=1,
            date=add_one_month_clamped(today, anchor_day),
            principal_portion=principal_payment,
            interest_portion=interest_payment,
            total_payment=total_payment,
            remaining_balance_after=max(Decimal(0), current_balance - principal_payment),
            cumulative_interest=interest_payment,
            cumulative_principal=principal_payment,
        )
