"""Valuation model - an anchor that pins an account's balance on a date."""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Valuation(Base):
    """Marks its Entry's amount as the account's total value on that date."""

    __tablename__ = "valuations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = Column(
        String(36), ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Relationships
    entry = relationship("Entry", back_populates="valuation")
