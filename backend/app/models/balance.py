"""Balance history model (append-only ledger of account balances)."""

import uuid
import enum

from sqlalchemy import Column, Date, DateTime, Enum as SQLEnum, ForeignKey, Index, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_utils import utc_now_lambda


class BalanceType(str, enum.Enum):
    """Origin of a balance record."""
    MANUAL = "manual"  # Entered by a family member
    AUTOMATIC = "automatic"  # Monthly interest accrual
    PAYMENT = "payment"  # Recorded loan payment


class Balance(Base):
    """
    Balance of an account as of a date.

    Records are never updated in place; corrections append a new record.
    The current balance is the record with the latest ``date``, ties broken
    by the latest ``created_at``.
    """

    __tablename__ = "balances"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(20, 8), nullable=False)
    date = Column(Date, nullable=False, index=True)
    balance_type = Column(SQLEnum(BalanceType), default=BalanceType.MANUAL, nullable=False)

    # Amortization details
    interest_amount = Column(Numeric(20, 8), nullable=True)  # AUTOMATIC and PAYMENT
    principal_amount = Column(Numeric(20, 8), nullable=True)  # PAYMENT only
    payment_amount = Column(Numeric(20, 8), nullable=True)  # PAYMENT only
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    # Relationships
    account = relationship("Account", back_populates="balances")

    __table_args__ = (
        # Serves the "latest as of date" lookup
        Index("ix_balances_account_date_created", "account_id", "date", "created_at"),
    )

    def __repr__(self):
        return f"<Balance {self.account_id} {self.date} {self.amount}>"
