"""Merchant model - counterparties attached to transactions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid


class Merchant(Base):
    """A merchant as reported by one source.  Unique on ``(source, name)``."""

    __tablename__ = "merchants"
    __table_args__ = (
        UniqueConstraint("source", "name", name="uix_merchant_source_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    source = Column(String, nullable=False)
    name = Column(String, nullable=False)
    provider_merchant_id = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
