"""PostgreSQL connection and schema definitions."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    text,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import get_settings
from src.core.logging import get_logger

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

usage_records = Table(
    "usage_records",
    metadata,
    Column("subject_id", String, primary_key=True),
    Column("feature_slug", String, primary_key=True),
    Column("current_usage", BigInteger, nullable=False, server_default=text("0")),
    Column("limit_value", BigInteger, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("last_reset_at", DateTime(timezone=True), nullable=True),
    CheckConstraint("current_usage >= 0", name="ck_usage_records_current_usage"),
    CheckConstraint("limit_value IS NULL OR limit_value >= 0", name="ck_usage_records_limit_value"),
)

Index("ix_usage_records_subject_id", usage_records.c.subject_id)
Index("ix_usage_records_feature_slug", usage_records.c.feature_slug)


# ── Engine ───────────────────────────────────────────────────────

_engine: AsyncEngine | None = None


async def get_engine() -> AsyncEngine:
    """Get or create the async database engine (singleton)."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url.get_secret_value()
        _engine = create_async_engine(
            db_url,
            echo=False,
            pool_size=10,
            max_overflow=20,
        )
        log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return _engine


async def init_schema() -> None:
    """Create all tables and indexes."""
    engine = await get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    log.info("schema_initialized")


async def close_engine() -> None:
    """Dispose the database engine."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        log.info("database_engine_closed")
