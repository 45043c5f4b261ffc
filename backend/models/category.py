"""Category model - transaction categories."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from database import Base
from models.utils import generate_uuid


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
