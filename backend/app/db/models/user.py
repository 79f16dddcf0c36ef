"""User model: one row per e-mail identity, created on first magic-link login."""

import uuid

from sqlalchemy import Column, String

from app.db.base import Base
from app.db.types import UTCDateTime, utc_now


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), unique=True, nullable=False, index=True)  # always lowercased

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
