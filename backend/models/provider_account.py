"""ProviderAccount model - one provider-side account, wallet or brokerage account."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class ProviderAccount(Base):
    """An account as the provider sees it.

    ``raw_activities_payload`` holds the full merged activity history as
    raw provider JSON.  It is both the merge base for the next sync and the
    audit trail for reprocessing without re-fetching.
    """

    __tablename__ = "provider_accounts"
    __table_args__ = (
        UniqueConstraint(
            "connection_id", "external_id", name="uix_provider_account_connection_external"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    institution_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=True)
    account_type = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    current_balance = Column(Numeric(19, 4), nullable=True)
    raw_payload = Column(JSON, nullable=True)
    raw_activities_payload = Column(JSON, nullable=True)
    activities_fetch_pending = Column(Boolean, nullable=False, default=False)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    connection = relationship("Connection", back_populates="provider_accounts")
    account = relationship("Account", back_populates="provider_accounts")

    @property
    def is_linked(self) -> bool:
        return self.account_id is not None
