"""Entry model - one ledger event carrying exactly one entryable payload."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

TRANSACTION = "Transaction"
TRADE = "Trade"
VALUATION = "Valuation"


class Entry(Base):
    """A dated, signed ledger amount.

    Amount sign convention: negative is an inflow (income), positive is
    an outflow (expense).  Provider-sourced entries are unique per account
    on ``(external_id, source)``.
    """

    __tablename__ = "entries"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "external_id", "source", name="uix_entry_account_external_source"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entryable_type = Column(String, nullable=False)  # "Transaction" | "Trade" | "Valuation"
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False)
    name = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    external_id = Column(String, nullable=True)
    source = Column(String, nullable=True)  # e.g., "mercury", "snaptrade"; None for manual
    locked_attributes = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="entries")
    transaction = relationship(
        "Transaction", back_populates="entry", uselist=False, cascade="all, delete-orphan"
    )
    trade = relationship(
        "Trade", back_populates="entry", uselist=False, cascade="all, delete-orphan"
    )
    valuation = relationship(
        "Valuation", back_populates="entry", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def entryable(self):
        if self.entryable_type == TRANSACTION:
            return self.transaction
        if self.entryable_type == TRADE:
            return self.trade
        if self.entryable_type == VALUATION:
            return self.valuation
        return None
