"""Balance model - derived daily account balance snapshot."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Balance(Base):
    """An account's balance at the end of one day."""

    __tablename__ = "balances"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "date", "currency", name="uix_balance_account_date_currency"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False)
    balance = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    cash_balance = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    holdings_value = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    cash_inflows = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    cash_outflows = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="balances")
