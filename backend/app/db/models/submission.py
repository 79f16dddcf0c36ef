"""Submission model: one accepted public form post."""

import uuid

from sqlalchemy import JSON, Column, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.types import UTCDateTime, utc_now


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        Index("submissions_form_created_id_idx", "form_id", "created_at", "id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    form_id = Column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)

    payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    ip = Column(String(100), nullable=True)
    user_agent = Column(String(500), nullable=True)

    # Millisecond precision; part of the pagination order key
    created_at = Column(UTCDateTime, nullable=False, default=utc_now, index=True)

    form = relationship("Form", back_populates="submissions")
