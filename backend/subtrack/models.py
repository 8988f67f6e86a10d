"""
SQLAlchemy models for persisted subscriptions.
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Numeric,
    Text,
    Integer,
    Index,
)

from subtrack.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Subscription(Base):
    """
    A tracked recurring subscription.
    Created or refreshed from user-approved import candidates.
    """
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    provider_id = Column(String(100), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    interval = Column(String(20), nullable=False, default="monthly")  # weekly, monthly, quarterly, yearly
    start_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    next_payment_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    notice_period_days = Column(Integer, nullable=False, default=30)
    payment_method = Column(String(50), nullable=False, default="Other")
    category = Column(String(50), nullable=False, default="Other")
    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    status = Column(String(30), nullable=False, default="active")  # active, cancelled, pending_cancellation, expired
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_subscriptions_user_active", "user_id", "active"),
    )
