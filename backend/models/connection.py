"""Connection model - a credentialed link to one external provider."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class ConnectionStatus(str, Enum):
    GOOD = "good"
    REQUIRES_UPDATE = "requires_update"
    PENDING_ACCOUNT_SETUP = "pending_account_setup"


class Connection(Base):
    """One user's credentialed link to a provider.

    ``credentials`` is an opaque blob handed to the provider client
    factory; nothing in the sync core reads inside it.
    """

    __tablename__ = "connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    name = Column(String, nullable=False)
    provider_kind = Column(String, nullable=False)  # ProviderKind value
    credentials = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default=ConnectionStatus.GOOD.value)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    provider_accounts = relationship(
        "ProviderAccount", back_populates="connection", cascade="all, delete-orphan"
    )
    syncs = relationship("Sync", back_populates="connection", cascade="all, delete-orphan")

    @property
    def unlinked_provider_accounts(self):
        return [pa for pa in self.provider_accounts if pa.account_id is None]
