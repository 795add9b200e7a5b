"""Storage interface for provider configuration, with an SQL implementation.

The store only depends on ``ProviderRepository``; the SQL schema lives in
models.py and is owned by the host application.
"""

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import ProviderCredentialRecord, ProviderDefault, ProviderRecord
from providers.types import ContentType, ProviderConfig, ProviderCredential

logger = logging.getLogger(__name__)

StoredProvider = tuple[ProviderConfig, ProviderCredential | None]


class ProviderRepository(Protocol):
    async def load_providers(self) -> list[StoredProvider]: ...

    async def save_providers(self, providers: list[StoredProvider]) -> None:
        """Replace the stored provider set with ``providers``."""
        ...

    async def load_defaults(self) -> dict[ContentType, str]: ...

    async def save_defaults(self, defaults: dict[ContentType, str]) -> None: ...


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; everything is written in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlProviderRepository:
    """ProviderRepository backed by the SQLAlchemy models in models.py."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from db import async_session

            session_factory = async_session
        self._session_factory = session_factory

    async def load_providers(self) -> list[StoredProvider]:
        async with self._session_factory() as session:
            records = (await session.execute(select(ProviderRecord).order_by(ProviderRecord.created_at))).scalars()
            credentials = {
                c.provider_id: c for c in (await session.execute(select(ProviderCredentialRecord))).scalars()
            }

            providers = []
            for record in records:
                config = ProviderConfig(
                    id=record.id,
                    provider_type=record.provider_type,
                    display_name=record.display_name,
                    description=record.description or "",
                    is_active=record.is_active,
                    api_base_url=record.api_base_url,
                    metadata=dict(record.extra or {}),
                    created_at=_as_utc(record.created_at),
                    updated_at=_as_utc(record.updated_at),
                )
                stored = credentials.get(record.id)
                credential = None
                if stored is not None:
                    credential = ProviderCredential(
                        id=stored.id,
                        provider_id=stored.provider_id,
                        api_key=stored.api_key,
                        organization_id=stored.organization_id,
                        expires_at=_as_utc(stored.expires_at),
                        last_validated=_as_utc(stored.last_validated),
                        created_at=_as_utc(stored.created_at),
                    )
                providers.append((config, credential))
            return providers

    async def save_providers(self, providers: list[StoredProvider]) -> None:
        keep = [config.id for config, _ in providers]

        async with self._session_factory() as session:
            await session.execute(delete(ProviderDefault).where(ProviderDefault.provider_id.not_in(keep)))
            await session.execute(
                delete(ProviderCredentialRecord).where(ProviderCredentialRecord.provider_id.not_in(keep))
            )
            await session.execute(delete(ProviderRecord).where(ProviderRecord.id.not_in(keep)))

            for config, credential in providers:
                await session.merge(
                    ProviderRecord(
                        id=config.id,
                        provider_type=str(getattr(config.provider_type, "value", config.provider_type)),
                        display_name=config.display_name,
                        description=config.description,
                        is_active=config.is_active,
                        api_base_url=config.api_base_url,
                        extra=config.metadata or None,
                        created_at=config.created_at,
                        updated_at=config.updated_at,
                    )
                )
                # One credential per provider: replace whatever is stored
                await session.execute(
                    delete(ProviderCredentialRecord).where(ProviderCredentialRecord.provider_id == config.id)
                )
                if credential is not None:
                    session.add(
                        ProviderCredentialRecord(
                            id=credential.id,
                            provider_id=config.id,
                            api_key=credential.api_key,
                            organization_id=credential.organization_id,
                            expires_at=credential.expires_at,
                            last_validated=credential.last_validated,
                            created_at=credential.created_at,
                        )
                    )
            await session.commit()
        logger.info("Saved %d provider(s)", len(providers))

    async def load_defaults(self) -> dict[ContentType, str]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(ProviderDefault))).scalars()
            defaults = {}
            for row in rows:
                try:
                    defaults[ContentType(row.content_type)] = row.provider_id
                except ValueError:
                    logger.warning("Ignoring default for unknown content type %s", row.content_type)
            return defaults

    async def save_defaults(self, defaults: dict[ContentType, str]) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(ProviderDefault))
            for content_type, provider_id in defaults.items():
                session.add(ProviderDefault(content_type=ContentType(content_type).value, provider_id=provider_id))
            await session.commit()
