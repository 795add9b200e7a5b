"""SQLAlchemy models — 3 tables for persisted provider configuration."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ProviderRecord(Base):
    """A registered provider. Capabilities are not stored; they come from the adapter class."""

    __tablename__ = "providers"

    id = Column(String(36), primary_key=True)
    provider_type = Column(String(32), nullable=False, index=True)  # openai / anthropic / gemini / ...
    display_name = Column(String(128), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    api_base_url = Column(Text, nullable=True)
    extra = Column("metadata", JSON, nullable=True)  # e.g. {"models": {"text": "openai/gpt-4o"}}
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)


class ProviderCredentialRecord(Base):
    """The single API credential of a provider. Stored as given (no encryption at rest)."""

    __tablename__ = "provider_credentials"

    id = Column(String(36), primary_key=True)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, unique=True)
    api_key = Column(Text, nullable=False)
    organization_id = Column(String(128), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    last_validated = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class ProviderDefault(Base):
    """Default provider per content type (text / image / video)."""

    __tablename__ = "provider_defaults"

    content_type = Column(String(16), primary_key=True)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
