"""Sync model - one execution of the connection sync pipeline."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class SyncStatus(str, Enum):
    PENDING = "pending"
    IMPORTING = "importing"
    REQUIRES_ACCOUNT_SETUP = "requires_account_setup"
    PROCESSING = "processing"
    CALCULATING = "calculating"
    COMPLETED = "completed"
    FAILED = "failed"


class Sync(Base):
    """A single run of the sync pipeline for one connection."""

    __tablename__ = "syncs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String, nullable=False, default=SyncStatus.PENDING.value)
    status_text = Column(String, nullable=True)  # Human-readable progress / outcome
    error = Column(Text, nullable=True)
    window_start_date = Column(Date, nullable=True)
    window_end_date = Column(Date, nullable=True)
    sync_stats = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    # Relationships
    connection = relationship("Connection", back_populates="syncs")

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            SyncStatus.COMPLETED.value,
            SyncStatus.FAILED.value,
            SyncStatus.REQUIRES_ACCOUNT_SETUP.value,
        )
