"""In-memory usage store — reference backend for development and tests."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

from src.core.interfaces import BaseUsageStore
from src.core.types import UsageRecord

Key = tuple[str, str]


class InMemoryUsageStore(BaseUsageStore):
    """Dict-backed store with one ``asyncio.Lock`` per (subject, feature) key.

    Records are frozen dataclasses, so the values handed out are already
    snapshots; writers swap in a new record rather than mutating one.
    """

    def __init__(self) -> None:
        self._records: dict[Key, UsageRecord] = {}
        self._locks: dict[Key, asyncio.Lock] = {}

    def _get_lock(self, key: Key) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def get(self, subject_id: str, feature_slug: str) -> UsageRecord | None:
        return self._records.get((subject_id, feature_slug))

    async def upsert(self, record: UsageRecord) -> UsageRecord:
        async with self._get_lock(record.key):
            existing = self._records.get(record.key)
            if existing is not None:
                record = replace(record, created_at=existing.created_at)
            self._records[record.key] = record
            return record

    async def get_or_create(self, subject_id: str, feature_slug: str) -> UsageRecord:
        key = (subject_id, feature_slug)
        async with self._get_lock(key):
            record = self._records.get(key)
            if record is None:
                record = UsageRecord(subject_id=subject_id, feature_slug=feature_slug)
                self._records[key] = record
            return record

    async def increment(
        self,
        subject_id: str,
        feature_slug: str,
        amount: int,
        limit: int | None = None,
    ) -> UsageRecord:
        key = (subject_id, feature_slug)
        async with self._get_lock(key):
            now = datetime.now(timezone.utc)
            current = self._records.get(key)
            if current is None:
                current = UsageRecord(subject_id=subject_id, feature_slug=feature_slug, created_at=now)
            record = replace(
                current,
                current_usage=current.current_usage + amount,
                limit=limit,
                updated_at=now,
            )
            self._records[key] = record
            return record

    async def reset(
        self,
        subject_id: str,
        feature_slug: str,
        limit: int | None = None,
    ) -> UsageRecord:
        key = (subject_id, feature_slug)
        async with self._get_lock(key):
            now = datetime.now(timezone.utc)
            current = self._records.get(key)
            if current is None:
                current = UsageRecord(subject_id=subject_id, feature_slug=feature_slug, created_at=now)
            record = replace(current, current_usage=0, limit=limit, updated_at=now, last_reset_at=now)
            self._records[key] = record
            return record

    async def list_by_subject(self, subject_id: str) -> list[UsageRecord]:
        records = [r for (sid, _), r in self._records.items() if sid == subject_id]
        return sorted(records, key=lambda r: r.feature_slug)

    async def list_by_feature(self, feature_slug: str) -> list[UsageRecord]:
        records = [r for (_, slug), r in self._records.items() if slug == feature_slug]
        return sorted(records, key=lambda r: r.subject_id)

    async def reset_all(self) -> int:
        now = datetime.now(timezone.utc)
        count = 0
        for key in list(self._records):
            async with self._get_lock(key):
                record = self._records[key]
                if record.current_usage == 0:
                    continue
                self._records[key] = replace(record, current_usage=0, updated_at=now, last_reset_at=now)
                count += 1
        return count
