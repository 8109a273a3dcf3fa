"""SQLAlchemy models package."""

from app.models.family import Family
from app.models.account import Account, AccountCategory, PaymentType
from app.models.balance import Balance, BalanceType

__all__ = [
    "Family",
    "Account",
    "AccountCategory",
    "PaymentType",
    "Balance",
    "BalanceType",
]
