"""MagicLink model: single-use login tokens, stored hashed."""

import uuid

from sqlalchemy import Column, String

from app.db.base import Base
from app.db.types import UTCDateTime, utc_now


class MagicLink(Base):
    __tablename__ = "magic_links"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)  # sha256 hex

    expires_at = Column(UTCDateTime, nullable=False)
    used_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
