"""Transaction model - the cash-movement payload of an Entry."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Transaction(Base):
    """Categorisation and merchant data for a cash entry."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = Column(
        String(36), ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    merchant_id = Column(String(36), ForeignKey("merchants.id"), nullable=True)
    pending = Column(Boolean, nullable=False, default=False)
    locked_attributes = Column(JSON, nullable=False, default=dict)

    # Relationships
    entry = relationship("Entry", back_populates="transaction")
    category = relationship("Category")
    merchant = relationship("Merchant")
