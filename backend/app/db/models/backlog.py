"""Backlog integration models: per-user connection and per-form forwarding settings."""

import uuid

from sqlalchemy import JSON, Boolean, Column, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base
from app.db.types import UTCDateTime, utc_now


class BacklogConnection(Base):
    __tablename__ = "integration_backlog_connections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_email = Column(String(320), unique=True, nullable=False, index=True)

    space_url = Column(String(500), nullable=False)
    api_key_enc = Column(Text, nullable=False)  # SecretBox blob, never plaintext
    default_project_key = Column(String(50), nullable=False)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)


class BacklogFormSettings(Base):
    __tablename__ = "integration_backlog_form_settings"

    form_id = Column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), primary_key=True)

    enabled = Column(Boolean, nullable=False, default=False)
    project_key = Column(String(50), nullable=True)  # None = connection default
    field_mapping = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
