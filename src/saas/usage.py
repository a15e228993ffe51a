"""Usage ledger — per-subject, per-feature quota accounting.

The ledger is the only writer of usage records. It validates arguments,
resolves the subject's current limit on every call, and delegates the
atomic read-modify-write to the store. It never blocks a write because a
limit was reached: overage is recorded, and callers that want to refuse an
action ask ``evaluate_usage`` (or ``evaluator.can_perform``) first.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace

from src.core.exceptions import UnavailableError, ValidationError
from src.core.interfaces import BaseLimitResolver, BaseUsageStore
from src.core.logging import get_logger
from src.core.types import FeatureUsageStats, UsageEvaluation, UsageRecord
from src.saas import evaluator
from src.saas.plans import PlanLimitResolver, SubjectContext

log = get_logger(__name__)


def _require_identifier(name: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        msg = f"{name} must be a non-empty string"
        raise ValidationError(msg, {name: value})
    return value


def _require_amount(amount: object) -> int:
    # bool is an int subclass; True must not count as 1
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        msg = f"amount must be a positive integer, got {amount!r}"
        raise ValidationError(msg, {"amount": amount})
    return amount


class UsageLedger:
    """Records, resets and reads usage counters."""

    def __init__(
        self,
        store: BaseUsageStore,
        resolver: BaseLimitResolver | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver or PlanLimitResolver()

    async def _resolve_limit(
        self,
        subject_id: str,
        feature_slug: str,
        limit: int | None,
        context: SubjectContext | None,
    ) -> int | None:
        """Caller-supplied limit wins; otherwise ask the resolver (never cached)."""
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                msg = f"limit must be a non-negative integer, got {limit!r}"
                raise ValidationError(msg, {"limit": limit})
            return limit
        return await self._resolver.resolve_limit(
            feature_slug, context or SubjectContext(subject_id=subject_id)
        )

    async def get_usage(
        self,
        subject_id: str,
        feature_slug: str,
        *,
        limit: int | None = None,
        context: SubjectContext | None = None,
    ) -> UsageRecord:
        """Current record for the key, created at zero on first read.

        Callers that record with an explicit ``limit`` pass the same value here;
        otherwise the resolver supplies it.
        """
        _require_identifier("subject_id", subject_id)
        _require_identifier("feature_slug", feature_slug)

        limit = await self._resolve_limit(subject_id, feature_slug, limit, context)
        try:
            record = await self._store.get_or_create(subject_id, feature_slug)
        except UnavailableError:
            log.error("usage_read_failed", subject_id=subject_id, feature_slug=feature_slug)
            raise
        return replace(record, limit=limit)

    async def record_usage(
        self,
        subject_id: str,
        feature_slug: str,
        amount: int = 1,
        *,
        limit: int | None = None,
        context: SubjectContext | None = None,
    ) -> UsageRecord:
        """Atomically add ``amount`` and return the new snapshot.

        Pass ``limit`` to skip the resolver; ``limit=0`` records the feature
        as explicitly unlimited.
        """
        _require_identifier("subject_id", subject_id)
        _require_identifier("feature_slug", feature_slug)
        _require_amount(amount)

        resolved = await self._resolve_limit(subject_id, feature_slug, limit, context)
        try:
            record = await self._store.increment(subject_id, feature_slug, amount, resolved)
        except UnavailableError:
            log.error(
                "usage_record_failed",
                subject_id=subject_id,
                feature_slug=feature_slug,
                amount=amount,
            )
            raise

        log.debug(
            "usage_recorded",
            subject_id=subject_id,
            feature_slug=feature_slug,
            amount=amount,
            current_usage=record.current_usage,
        )
        if evaluator.is_exceeded(record.current_usage, record.limit):
            log.warning(
                "usage_limit_exceeded",
                subject_id=subject_id,
                feature_slug=feature_slug,
                current_usage=record.current_usage,
                limit=record.limit,
            )
        return record

    async def reset_usage(
        self,
        subject_id: str,
        feature_slug: str,
        *,
        limit: int | None = None,
        context: SubjectContext | None = None,
    ) -> None:
        """Set the counter to zero. Safe to repeat; creates the record if absent."""
        _require_identifier("subject_id", subject_id)
        _require_identifier("feature_slug", feature_slug)

        limit = await self._resolve_limit(subject_id, feature_slug, limit, context)
        try:
            await self._store.reset(subject_id, feature_slug, limit)
        except UnavailableError:
            log.error("usage_reset_failed", subject_id=subject_id, feature_slug=feature_slug)
            raise
        log.info("usage_reset", subject_id=subject_id, feature_slug=feature_slug)

    async def list_usage_for_subject(
        self,
        subject_id: str,
        *,
        limits: Mapping[str, int | None] | None = None,
        context: SubjectContext | None = None,
    ) -> list[UsageRecord]:
        """All of a subject's records, each stamped with its current limit.

        ``limits`` maps feature slugs to explicit limits; other features go
        through the resolver.
        """
        _require_identifier("subject_id", subject_id)

        records = await self._store.list_by_subject(subject_id)
        snapshots: list[UsageRecord] = []
        for record in records:
            explicit = limits.get(record.feature_slug) if limits else None
            limit = await self._resolve_limit(subject_id, record.feature_slug, explicit, context)
            snapshots.append(replace(record, limit=limit))
        return snapshots

    async def evaluate_usage(
        self,
        subject_id: str,
        feature_slug: str,
        amount: int = 1,
        *,
        limit: int | None = None,
        context: SubjectContext | None = None,
    ) -> UsageEvaluation:
        """Limit decision for the key, including whether ``amount`` more would fit."""
        _require_amount(amount)
        record = await self.get_usage(subject_id, feature_slug, limit=limit, context=context)
        return evaluator.evaluate(record.current_usage, record.limit, amount)

    async def reset_all_usage(self) -> int:
        """Zero every counter (billing-period rollover). Returns how many changed."""
        count = await self._store.reset_all()
        log.info("usage_reset_all", reset_count=count)
        return count

    async def get_feature_usage_stats(self, feature_slug: str) -> FeatureUsageStats:
        """Aggregate a feature's usage over the subjects that have used it."""
        _require_identifier("feature_slug", feature_slug)

        records = await self._store.list_by_feature(feature_slug)
        active = [r.current_usage for r in records if r.current_usage > 0]
        if not active:
            return FeatureUsageStats(feature_slug=feature_slug)

        total = sum(active)
        return FeatureUsageStats(
            feature_slug=feature_slug,
            total_usage=total,
            average_usage=total / len(active),
            max_usage=max(active),
            users_using_it=len(active),
        )
