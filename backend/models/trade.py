"""Trade model - the security-trade payload of an Entry."""

from decimal import Decimal

from sqlalchemy import Column, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Trade(Base):
    """A buy (positive qty) or sell (negative qty) of one security."""

    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = Column(
        String(36), ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    security_id = Column(
        String(36), ForeignKey("securities.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    qty = Column(Numeric(24, 8), nullable=False, default=Decimal("0"))
    price = Column(Numeric(19, 8), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False)

    # Relationships
    entry = relationship("Entry", back_populates="trade")
    security = relationship("Security", back_populates="trades")
