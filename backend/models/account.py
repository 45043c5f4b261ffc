"""Account model - the user-facing canonical ledger account."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

ASSET = "asset"
LIABILITY = "liability"


class Account(Base):
    """A canonical ledger account.

    An account is "linked" when at least one ProviderAccount points at it;
    otherwise it is purely manual.  ``balance`` / ``cash_balance`` are the
    live figures written by ``update_balance``; historical figures live in
    the ``balances`` table.
    """

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    name = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    classification = Column(String, nullable=False, default=ASSET)  # "asset" | "liability"
    accountable_type = Column(String, nullable=True)  # e.g., "Depository", "Investment", "Crypto"
    balance = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    cash_balance = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    provider_accounts = relationship("ProviderAccount", back_populates="account")
    entries = relationship("Entry", back_populates="account", cascade="all, delete-orphan")
    holdings = relationship("Holding", back_populates="account", cascade="all, delete-orphan")
    balances = relationship("Balance", back_populates="account", cascade="all, delete-orphan")

    @property
    def is_linked(self) -> bool:
        return len(self.provider_accounts) > 0

    @property
    def is_liability(self) -> bool:
        return self.classification == LIABILITY
