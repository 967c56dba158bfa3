"""Database setup with SQLAlchemy async."""

from sqlalchemy import JSON, inspect, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from safety_sync.config import Settings

REQUIRED_TABLES = ("lytx_safety_events", "sync_checkpoints", "data_import_batches")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    url = make_url(settings.database_url)
    if url.get_backend_name() != "postgresql":
        return create_async_engine(url, echo=settings.debug)

    return create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=2,
        max_overflow=0,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory handed to the sync service."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that don't exist yet (local development only)."""
    # Register models on the metadata
    import safety_sync.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db_ready(engine: AsyncEngine) -> None:
    """
    Verify database connectivity and expected schema.

    Raises RuntimeError when one of the sync tables is missing.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))

        existing = await conn.run_sync(
            lambda sync_conn: set(inspect(sync_conn).get_table_names())
        )

    missing = [name for name in REQUIRED_TABLES if name not in existing]
    if missing:
        raise RuntimeError(
            f"Database schema is missing tables: {', '.join(missing)} "
            "(run alembic upgrade head)."
        )
