"""Pydantic V2 request/response schemas for the SaaS Guard API."""

from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, Field

from src.core.types import ColorBand, FeatureUsageStats, Severity, UsageEvaluation, UsageRecord


# ── Health ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str


# ── Usage ────────────────────────────────────────────────────────

class RecordUsageIn(BaseModel):
    """Request body for recording usage. The ledger rejects non-positive amounts."""

    amount: int = 1


class UsageRecordOut(BaseModel):
    subject_id: str
    feature_slug: str
    current_usage: int
    limit: int | None = None
    updated_at: datetime
    created_at: datetime
    last_reset_at: datetime | None = None

    @classmethod
    def from_record(cls, record: UsageRecord) -> UsageRecordOut:
        return cls(
            subject_id=record.subject_id,
            feature_slug=record.feature_slug,
            current_usage=record.current_usage,
            limit=record.limit,
            updated_at=record.updated_at,
            created_at=record.created_at,
            last_reset_at=record.last_reset_at,
        )


class UsageStatusOut(BaseModel):
    """Evaluated limit state. ``remaining`` is null when the feature is unlimited."""

    current_usage: int
    limit: int | None = None
    is_unlimited: bool
    is_exceeded: bool
    remaining: int | None = None
    percentage: float = Field(ge=0.0, le=100.0)
    can_perform: bool
    severity: Severity
    color: ColorBand
    status_label: str
    display: str

    @classmethod
    def from_evaluation(cls, ev: UsageEvaluation) -> UsageStatusOut:
        return cls(
            current_usage=ev.current_usage,
            limit=ev.limit,
            is_unlimited=ev.is_unlimited,
            is_exceeded=ev.is_exceeded,
            remaining=None if math.isinf(ev.remaining) else int(ev.remaining),
            percentage=ev.percentage,
            can_perform=ev.can_perform,
            severity=ev.severity,
            color=ev.color,
            status_label=ev.status_label,
            display=ev.display,
        )


class ResetAllOut(BaseModel):
    reset_count: int


class FeatureUsageStatsOut(BaseModel):
    feature_slug: str
    total_usage: int = 0
    average_usage: float = 0.0
    max_usage: int = 0
    users_using_it: int = 0

    @classmethod
    def from_stats(cls, stats: FeatureUsageStats) -> FeatureUsageStatsOut:
        return cls(
            feature_slug=stats.feature_slug,
            total_usage=stats.total_usage,
            average_usage=stats.average_usage,
            max_usage=stats.max_usage,
            users_using_it=stats.users_using_it,
        )


class ErrorOut(BaseModel):
    detail: str
    kind: str
