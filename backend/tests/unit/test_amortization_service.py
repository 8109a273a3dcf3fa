"""Unit tests for AmortizationService: core financial math."""

import pytest
from datetime import date
from decimal import Decimal

from app.models.account import PaymentType
from app.schemas.debt import LoanTerms
from app.services.amortization_service import PAYOFF_EPSILON, AmortizationService


svc = AmortizationService


def _terms(**overrides) -> LoanTerms:
    values = dict(
        principal=Decimal("100000"),
        annual_rate=Decimal("0.05"),
        term_months=120,
        payment_type=PaymentType.FIXED,
        anchor_date=date(2024, 1, 15),
        auto_update_enabled=True,
    )
    values.update(overrides)
    return LoanTerms(**values)


# ---------------------------------------------------------------------------
# calculate_fixed_monthly_payment
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestCalculateFixedMonthlyPayment:
    def test_known_loan(self):
        """100K at 5% for 120 months should yield ~1060.66."""
        payment = svc.calculate_fixed_monthly_payment(Decimal("100000"), Decimal("0.05"), 120)
        assert payment.quantize(Decimal("0.01")) == Decimal("1060.66")

    def test_thirty_year_mortgage(self):
        """200K at 6% for 360 months should yield ~1199.10."""
        payment = svc.calculate_fixed_monthly_payment(Decimal("200000"), Decimal("0.06"), 360)
        assert payment.quantize(Decimal("0.01")) == Decimal("1199.10")

    def test_zero_interest(self):
        """0% rate: simple division principal / months."""
        payment = svc.calculate_fixed_monthly_payment(Decimal("12000"), Decimal("0"), 12)
        assert payment == Decimal("1000")

    def test_zero_principal(self):
        assert svc.calculate_fixed_monthly_payment(Decimal("0"), Decimal("0.05"), 60) == Decimal("0")

    def test_negative_principal(self):
        assert svc.calculate_fixed_monthly_payment(Decimal("-1000"), Decimal("0.05"), 60) == Decimal("0")

    def test_zero_term(self):
        assert svc.calculate_fixed_monthly_payment(Decimal("10000"), Decimal("0.05"), 0) == Decimal("0")

    def test_not_rounded(self):
        payment = svc.calculate_fixed_monthly_payment(Decimal("100000"), Decimal("0.05"), 120)
        assert payment != payment.quantize(Decimal("0.01"))


# ---------------------------------------------------------------------------
# generate_amortization_schedule
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestGenerateAmortizationSchedule:
    def test_fixed_loan_totals(self):
        schedule = svc.generate_amortization_schedule(
            _terms(), Decimal("100000"), 120, today=date(2024, 1, 15)
        )

        assert schedule is not None
        assert len(schedule.payments) == 120
        assert schedule.monthly_payment.quantize(Decimal("0.01")) == Decimal("1060.66")
        assert Decimal("27270") < schedule.total_interest < Decimal("27290")
        assert abs(schedule.total_payments - schedule.total_interest - Decimal("100000")) < PAYOFF_EPSILON

    def test_first_month_interest(self):
        """300K at 3.5%: first month's interest is 875."""
        schedule = svc.generate_amortization_schedule(
            _terms(principal=Decimal("300000"), annual_rate=Decimal("0.035"), term_months=360),
            Decimal("300000"),
            360,
            today=date(2024, 1, 15),
        )

        assert schedule.payments[0].interest_portion.quantize(Decimal("0.01")) == Decimal("875.00")

    def test_balance_ends_at_zero(self):
        schedule = svc.generate_amortization_schedule(
            _terms(), Decimal("100000"), 120, today=date(2024, 1, 15)
        )

        assert schedule.payments[-1].remaining_balance_after < PAYOFF_EPSILON
        assert abs(schedule.payments[-1].cumulative_principal - Decimal("100000")) < PAYOFF_EPSILON

    def test_cumulative_columns_are_running_sums(self):
        schedule = svc.generate_amortization_schedule(
            _terms(), Decimal("100000"), 24, today=date(2024, 1, 15)
        )

        interest = Decimal(0)
        principal = Decimal(0)
        for payment in schedule.payments:
            interest += payment.interest_portion
            principal += payment.principal_portion
            assert payment.cumulative_interest == interest
            assert payment.cumulative_principal == principal
            assert abs(
                payment.total_payment - payment.principal_portion - payment.interest_portion
            ) < Decimal("1e-12")

    def test_zero_rate(self):
        schedule = svc.generate_amortization_schedule(
            _terms(principal=Decimal("12000"), annual_rate=Decimal("0"), term_months=12),
            Decimal("12000"),
            12,
            today=date(2024, 1, 15),
        )

        assert len(schedule.payments) == 12
        assert schedule.total_interest == Decimal("0")
        assert all(p.total_payment == Decimal("1000") for p in schedule.payments)
        assert schedule.payments[-1].remaining_balance_after == Decimal("0")

    def test_interest_only_never_reduces_principal(self):
        schedule = svc.generate_amortization_schedule(
            _terms(payment_type=PaymentType.INTEREST_ONLY, annual_rate=Decimal("0.06")),
            Decimal("100000"),
            12,
            today=date(2024, 1, 15),
        )

        assert len(schedule.payments) == 12
        for payment in schedule.payments:
            assert payment.principal_portion == Decimal("0")
            assert payment.interest_portion == Decimal("500")
            assert payment.remaining_balance_after == Decimal("100000")
        assert schedule.total_interest == Decimal("6000")

    def test_stored_payment_pays_off_early(self):
        """A payment larger than needed ends the schedule with a smaller final period."""
        schedule = svc.generate_amortization_schedule(
            _terms(
                principal=Decimal("10000"),
                annual_rate=Decimal("0"),
                monthly_payment=Decimal("3000"),
            ),
            Decimal("10000"),
            12,
            today=date(2024, 1, 15),
        )

        assert len(schedule.payments) == 4
        assert schedule.payments[-1].total_payment == Decimal("1000")
        assert schedule.payments[-1].remaining_balance_after == Decimal("0")

    def test_reamortizes_current_balance_over_remaining_months(self):
        schedule = svc.generate_amortization_schedule(
            _terms(), Decimal("50000"), 60, today=date(2024, 1, 15)
        )

        expected = svc.calculate_fixed_monthly_payment(Decimal("50000"), Decimal("0.05"), 60)
        assert schedule.monthly_payment == expected

    def test_falls_back_to_principal_without_balance(self):
        schedule = svc.generate_amortization_schedule(_terms(), None, 120, today=date(2024, 1, 15))

        assert schedule.current_balance == Decimal("100000")

    def test_dates_follow_anchor_day(self):
        schedule = svc.generate_amortization_schedule(
            _terms(anchor_date=date(2023, 10, 31)), Decimal("100000"), 3, today=date(2024, 1, 10)
        )

        assert [p.date for p in schedule.payments] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]
        assert [p.period_index for p in schedule.payments] == [1, 2, 3]

    def test_rate_unset_returns_none(self):
        assert svc.generate_amortization_schedule(
            _terms(annual_rate=None), Decimal("100000"), 120
        ) is None

    @pytest.mark.parametrize("remaining", [None, 0])
    def test_no_remaining_months_returns_none(self, remaining):
        assert svc.generate_amortization_schedule(_terms(), Decimal("100000"), remaining) is None


# ---------------------------------------------------------------------------
# calculate_next_payment
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestCalculateNextPayment:
    def test_fixed_split(self):
        terms = _terms(annual_rate=Decimal("0.06"))
        payment = svc.calculate_next_payment(
            terms, Decimal("100000"), 120, today=date(2024, 3, 10)
        )

        expected_total = svc.calculate_fixed_monthly_payment(Decimal("100000"), Decimal("0.06"), 120)
        assert payment.interest_portion == Decimal("500")
        assert payment.total_payment == expected_total
        assert payment.principal_portion == expected_total - Decimal("500")
        assert payment.remaining_balance_after == Decimal("100000") - payment.principal_portion

    def test_date_is_next_billing_day(self):
        payment = svc.calculate_next_payment(
            _terms(), Decimal("100000"), 120, today=date(2024, 3, 10)
        )

        assert payment.date == date(2024, 4, 15)

    def test_uses_term_when_remaining_unknown(self):
        terms = _terms(annual_rate=Decimal("0.06"), term_months=60)
        payment = svc.calculate_next_payment(terms, Decimal("100000"), None, today=date(2024, 3, 10))

        expected_total = svc.calculate_fixed_monthly_payment(Decimal("100000"), Decimal("0.06"), 60)
        assert payment.total_payment == expected_total

    def test_no_months_left_projects_zero_payment(self):
        terms = _terms(annual_rate=Decimal("0.06"))
        payment = svc.calculate_next_payment(terms, Decimal("100000"), 0, today=date(2024, 3, 10))

        assert payment.total_payment == Decimal("0")
        assert payment.principal_portion == Decimal("0")
        assert payment.interest_portion == Decimal("500")
        assert payment.remaining_balance_after == Decimal("100000")

    def test_no_months_left_keeps_stored_payment(self):
        terms = _terms(annual_rate=Decimal("0.06"), monthly_payment=Decimal("1200"))
        payment = svc.calculate_next_payment(terms, Decimal("100000"), 0, today=date(2024, 3, 10))

        assert payment.total_payment == Decimal("1200")
        assert payment.principal_portion == Decimal("700")

    def test_interest_only(self):
        terms = _terms(annual_rate=Decimal("0.06"), payment_type=PaymentType.INTEREST_ONLY)
        payment = svc.calculate_next_payment(terms, Decimal("100000"), 120, today=date(2024, 3, 10))

        assert payment.principal_portion == Decimal("0")
        assert payment.total_payment == Decimal("500")

    def test_rate_unset_returns_none(self):
        assert svc.calculate_next_payment(_terms(annual_rate=None), Decimal("100000"), 120) is None
