"""DataEnrichment model - which source last wrote which attribute."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid


class DataEnrichment(Base):
    """Audit row for one source's write of one attribute of one record.

    The most recently updated row for ``(enrichable_type, enrichable_id,
    attribute_name)`` identifies the source that currently owns the value.
    """

    __tablename__ = "data_enrichments"
    __table_args__ = (
        UniqueConstraint(
            "enrichable_type",
            "enrichable_id",
            "attribute_name",
            "source",
            name="uix_data_enrichment_record_attribute_source",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    enrichable_type = Column(String, nullable=False)  # e.g., "Entry", "Transaction"
    enrichable_id = Column(String(36), nullable=False, index=True)
    attribute_name = Column(String, nullable=False)
    value = Column(JSON, nullable=True)
    source = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
