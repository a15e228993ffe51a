"""Usage endpoints — per-subject, per-feature counters and limit status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response, status

from src.api.deps import get_usage_ledger
from src.api.models.schemas import (
    ErrorOut,
    FeatureUsageStatsOut,
    RecordUsageIn,
    ResetAllOut,
    UsageRecordOut,
    UsageStatusOut,
)
from src.saas.usage import UsageLedger

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    422: {"model": ErrorOut},
    503: {"model": ErrorOut},
}

router = APIRouter(prefix="/usage", tags=["usage"], responses=_ERROR_RESPONSES)
features_router = APIRouter(prefix="/features", tags=["usage"], responses=_ERROR_RESPONSES)


@router.post("/reset-all", response_model=ResetAllOut)
async def reset_all_usage(
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> ResetAllOut:
    """Zero every counter (billing-period rollover)."""
    count = await ledger.reset_all_usage()
    return ResetAllOut(reset_count=count)


@router.get("/{subject_id}", response_model=list[UsageRecordOut])
async def list_usage(
    subject_id: str,
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> list[UsageRecordOut]:
    """All usage records for a subject; empty if nothing was recorded yet."""
    records = await ledger.list_usage_for_subject(subject_id)
    return [UsageRecordOut.from_record(r) for r in records]


@router.get("/{subject_id}/{feature_slug}", response_model=UsageRecordOut)
async def get_usage(
    subject_id: str,
    feature_slug: str,
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> UsageRecordOut:
    record = await ledger.get_usage(subject_id, feature_slug)
    return UsageRecordOut.from_record(record)


@router.get("/{subject_id}/{feature_slug}/status", response_model=UsageStatusOut)
async def get_usage_status(
    subject_id: str,
    feature_slug: str,
    amount: int = 1,
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> UsageStatusOut:
    """Evaluated limit state, including whether ``amount`` more units would fit."""
    evaluation = await ledger.evaluate_usage(subject_id, feature_slug, amount)
    return UsageStatusOut.from_evaluation(evaluation)


@router.post("/{subject_id}/{feature_slug}/record", response_model=UsageRecordOut)
async def record_usage(
    subject_id: str,
    feature_slug: str,
    body: RecordUsageIn | None = None,
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> UsageRecordOut:
    """Add to the counter. Recording past the limit is allowed."""
    amount = body.amount if body is not None else 1
    record = await ledger.record_usage(subject_id, feature_slug, amount)
    return UsageRecordOut.from_record(record)


@router.post(
    "/{subject_id}/{feature_slug}/reset",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def reset_usage(
    subject_id: str,
    feature_slug: str,
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> Response:
    await ledger.reset_usage(subject_id, feature_slug)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@features_router.get("/{feature_slug}/usage", response_model=FeatureUsageStatsOut)
async def get_feature_usage_stats(
    feature_slug: str,
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> FeatureUsageStatsOut:
    stats = await ledger.get_feature_usage_stats(feature_slug)
    return FeatureUsageStatsOut.from_stats(stats)
