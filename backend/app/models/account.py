"""Account model with loan terms and auto-update state for debt accounts."""

import uuid
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_utils import utc_now_lambda


class AccountCategory(str, enum.Enum):
    """Account category. Only DEBT accounts carry loan terms."""
    BANKING = "banking"
    INVESTMENT = "investment"
    DEBT = "debt"


class PaymentType(str, enum.Enum):
    """How a loan is repaid each month."""
    FIXED = "fixed"  # French / annuity: constant total payment
    INTEREST_ONLY = "interest_only"


class Account(Base):
    """Financial account (bank, investment or debt)."""

    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    family_id = Column(UUID(as_uuid=True), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True)

    # Account identification
    name = Column(String(255), nullable=False)
    category = Column(SQLEnum(AccountCategory), nullable=False, index=True)
    currency = Column(String(3), default="EUR", nullable=False)
    notes = Column(Text, nullable=True)

    # Loan terms (DEBT only)
    original_balance = Column(Numeric(20, 8), nullable=True)
    apr_rate = Column(Numeric(9, 6), nullable=True)  # Annual rate as a fraction (0.05 = 5%)
    term_months = Column(Integer, nullable=True)
    monthly_payment = Column(Numeric(20, 8), nullable=True)
    payment_type = Column(SQLEnum(PaymentType), default=PaymentType.FIXED, nullable=True)
    loan_start_date = Column(Date, nullable=True)  # Day-of-month is the billing day

    # Auto-update (monthly accrual) state
    auto_update_enabled = Column(Boolean, default=False, nullable=False)
    remaining_months = Column(Integer, nullable=True)
    last_auto_update = Column(Date, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    # Relationships
    family = relationship("Family", back_populates="accounts")
    balances = relationship("Balance", back_populates="account", cascade="all, delete-orphan")

    @property
    def is_debt(self) -> bool:
        """Check if this account is a debt."""
        return self.category == AccountCategory.DEBT

    def __repr__(self):
        return f"<Account {self.name} ({self.category.value if self.category else None})>"
