"""Async SQLAlchemy engine and session factory for SQLite."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config import settings

engine = create_async_engine(settings.database_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Columns added after the first release; create_all() does not alter existing tables
# Format: (table_name, column_name, column_type)
REQUIRED_COLUMNS = [
    ("providers", "api_base_url", "TEXT"),
    ("provider_credentials", "organization_id", "VARCHAR(128)"),
    ("provider_credentials", "expires_at", "DATETIME"),
]


async def _ensure_columns(conn):
    """Add missing columns to existing tables (SQLite ALTER TABLE ADD COLUMN)."""
    for table_name, col_name, col_type in REQUIRED_COLUMNS:
        result = await conn.execute(text(f"PRAGMA table_info({table_name})"))
        if col_name not in [row[1] for row in result.fetchall()]:
            await conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {col_name} {col_type}"))


async def create_tables(bind: AsyncEngine | None = None):
    """Create all tables defined in models.py and add any missing columns."""
    from models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _ensure_columns(conn)
