"""Subscription model: billing status mirrored from the billing provider webhook."""

import uuid

from sqlalchemy import Column, String

from app.db.base import Base
from app.db.types import UTCDateTime, utc_now


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_email = Column(String(320), unique=True, nullable=False, index=True)

    # "active" | "inactive"
    status = Column(String(20), nullable=False, default="inactive")
    provider_subscription_id = Column(String(255), nullable=True)
    provider_customer_id = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
