"""DB-backed usage store — PostgreSQL implementation of BaseUsageStore."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from src.core.exceptions import UnavailableError
from src.core.interfaces import BaseUsageStore
from src.core.logging import get_logger
from src.core.types import UsageRecord

log = get_logger(__name__)

_COLUMNS = (
    "subject_id, feature_slug, current_usage, limit_value, "
    "created_at, updated_at, last_reset_at"
)


class UsageRepository(BaseUsageStore):
    """Async PostgreSQL-backed usage storage.

    Per-key atomicity comes from single-statement upserts
    (``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``): the row lock taken
    by the conflicting update serializes concurrent writers to one key.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @asynccontextmanager
    async def _begin(self) -> AsyncIterator[AsyncConnection]:
        """Transaction that reports driver and network failures as UnavailableError."""
        try:
            async with self._engine.begin() as conn:
                yield conn
        except (SQLAlchemyError, OSError) as exc:
            log.error("usage_store_unavailable", error=str(exc))
            msg = "usage store unavailable"
            raise UnavailableError(msg, {"error": str(exc)}) from exc

    async def get(self, subject_id: str, feature_slug: str) -> UsageRecord | None:
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM usage_records "
                    "WHERE subject_id = :sid AND feature_slug = :slug"
                ),
                {"sid": subject_id, "slug": feature_slug},
            )
            r = result.mappings().first()
            if r is None:
                return None
            return self._row_to_record(r)

    async def upsert(self, record: UsageRecord) -> UsageRecord:
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    f"""
                    INSERT INTO usage_records ({_COLUMNS})
                    VALUES (:sid, :slug, :usage, :limit, :created, :updated, :reset)
                    ON CONFLICT (subject_id, feature_slug) DO UPDATE SET
                        current_usage = EXCLUDED.current_usage,
                        limit_value = EXCLUDED.limit_value,
                        updated_at = EXCLUDED.updated_at,
                        last_reset_at = EXCLUDED.last_reset_at
                    RETURNING {_COLUMNS}
                    """
                ),
                {
                    "sid": record.subject_id,
                    "slug": record.feature_slug,
                    "usage": record.current_usage,
                    "limit": record.limit,
                    "created": record.created_at,
                    "updated": record.updated_at,
                    "reset": record.last_reset_at,
                },
            )
            return self._row_to_record(result.mappings().one())

    async def get_or_create(self, subject_id: str, feature_slug: str) -> UsageRecord:
        now = datetime.now(timezone.utc)
        async with self._begin() as conn:
            # DO NOTHING waits for a concurrent inserter, so the SELECT below sees its row
            await conn.execute(
                text(
                    f"""
                    INSERT INTO usage_records ({_COLUMNS})
                    VALUES (:sid, :slug, 0, NULL, :now, :now, NULL)
                    ON CONFLICT (subject_id, feature_slug) DO NOTHING
                    """
                ),
                {"sid": subject_id, "slug": feature_slug, "now": now},
            )
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM usage_records "
                    "WHERE subject_id = :sid AND feature_slug = :slug"
                ),
                {"sid": subject_id, "slug": feature_slug},
            )
            return self._row_to_record(result.mappings().one())

    async def increment(
        self,
        subject_id: str,
        feature_slug: str,
        amount: int,
        limit: int | None = None,
    ) -> UsageRecord:
        now = datetime.now(timezone.utc)
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    f"""
                    INSERT INTO usage_records ({_COLUMNS})
                    VALUES (:sid, :slug, :amount, :limit, :now, :now, NULL)
                    ON CONFLICT (subject_id, feature_slug) DO UPDATE SET
                        current_usage = usage_records.current_usage + EXCLUDED.current_usage,
                        limit_value = EXCLUDED.limit_value,
                        updated_at = EXCLUDED.updated_at
                    RETURNING {_COLUMNS}
                    """
                ),
                {"sid": subject_id, "slug": feature_slug, "amount": amount, "limit": limit, "now": now},
            )
            return self._row_to_record(result.mappings().one())

    async def reset(
        self,
        subject_id: str,
        feature_slug: str,
        limit: int | None = None,
    ) -> UsageRecord:
        now = datetime.now(timezone.utc)
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    f"""
                    INSERT INTO usage_records ({_COLUMNS})
                    VALUES (:sid, :slug, 0, :limit, :now, :now, :now)
                    ON CONFLICT (subject_id, feature_slug) DO UPDATE SET
                        current_usage = 0,
                        limit_value = EXCLUDED.limit_value,
                        updated_at = EXCLUDED.updated_at,
                        last_reset_at = EXCLUDED.last_reset_at
                    RETURNING {_COLUMNS}
                    """
                ),
                {"sid": subject_id, "slug": feature_slug, "limit": limit, "now": now},
            )
            return self._row_to_record(result.mappings().one())

    async def list_by_subject(self, subject_id: str) -> list[UsageRecord]:
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM usage_records "
                    "WHERE subject_id = :sid ORDER BY feature_slug"
                ),
                {"sid": subject_id},
            )
            return [self._row_to_record(r) for r in result.mappings().all()]

    async def list_by_feature(self, feature_slug: str) -> list[UsageRecord]:
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM usage_records "
                    "WHERE feature_slug = :slug ORDER BY subject_id"
                ),
                {"slug": feature_slug},
            )
            return [self._row_to_record(r) for r in result.mappings().all()]

    async def reset_all(self) -> int:
        now = datetime.now(timezone.utc)
        async with self._begin() as conn:
            result = await conn.execute(
                text(
                    "UPDATE usage_records "
                    "SET current_usage = 0, updated_at = :now, last_reset_at = :now "
                    "WHERE current_usage > 0"
                ),
                {"now": now},
            )
            return int(result.rowcount or 0)

    @staticmethod
    def _row_to_record(r: Mapping[str, Any]) -> UsageRecord:
        """Convert a DB row mapping to a UsageRecord snapshot."""
        return UsageRecord(
            subject_id=r["subject_id"],
            feature_slug=r["feature_slug"],
            current_usage=int(r["current_usage"]),
            limit=r["limit_value"],
            created_at=r["created_at"],
            updated_at=r["updated_at"],
            last_reset_at=r.get("last_reset_at"),
        )
