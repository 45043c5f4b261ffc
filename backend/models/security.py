"""Security model: the shared ticker list trades and holdings point at."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Security(Base):
    """A tradable instrument, keyed by upper-cased ticker.

    Rows are created lazily the first time a provider reports a trade in
    the ticker. ``exchange`` is the MIC (or provider exchange code) when
    the provider supplies one.
    """

    __tablename__ = "securities"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    ticker = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    exchange = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    trades = relationship("Trade", back_populates="security")
    holdings = relationship("Holding", back_populates="security")
