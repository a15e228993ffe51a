"""Abstract base classes — all usage backends must implement these interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from src.core.types import UsageRecord

if TYPE_CHECKING:
    from src.saas.plans import SubjectContext


class BaseUsageStore(ABC):
    """Durable mapping of (subject_id, feature_slug) → counter state.

    Every mutation is atomic per key: concurrent increments of the same key
    serialize, different keys never wait on each other. Storage failures are
    raised as ``UnavailableError``.
    """

    @abstractmethod
    async def get(self, subject_id: str, feature_slug: str) -> UsageRecord | None:
        """Return the record for the key, or None if it was never created."""
        ...

    @abstractmethod
    async def upsert(self, record: UsageRecord) -> UsageRecord:
        """Insert or fully replace the record for ``record.key``."""
        ...

    @abstractmethod
    async def get_or_create(self, subject_id: str, feature_slug: str) -> UsageRecord:
        """Insert a zero record if absent, then return the stored record."""
        ...

    @abstractmethod
    async def increment(
        self,
        subject_id: str,
        feature_slug: str,
        amount: int,
        limit: int | None = None,
    ) -> UsageRecord:
        """Atomically add ``amount`` to the counter, creating the record if needed."""
        ...

    @abstractmethod
    async def reset(
        self,
        subject_id: str,
        feature_slug: str,
        limit: int | None = None,
    ) -> UsageRecord:
        """Atomically set the counter to zero, creating the record if needed."""
        ...

    @abstractmethod
    async def list_by_subject(self, subject_id: str) -> list[UsageRecord]:
        """Point-in-time copies of every record for the subject."""
        ...

    @abstractmethod
    async def list_by_feature(self, feature_slug: str) -> list[UsageRecord]:
        """Point-in-time copies of every record for the feature."""
        ...

    @abstractmethod
    async def reset_all(self) -> int:
        """Zero every non-zero counter. Returns the number of records changed."""
        ...


class BaseLimitResolver(ABC):
    """Source of configured limits (plan and override configuration)."""

    @abstractmethod
    async def resolve_limit(self, feature_slug: str, context: SubjectContext) -> int | None:
        """Return the subject's limit for the feature; None means unlimited."""
        ...
