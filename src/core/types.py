"""System-wide shared types — the single source of truth for all data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────

class Severity(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    LIMIT_REACHED = "limit_reached"


class ColorBand(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


# ── Usage Types ──────────────────────────────────────────────────

@dataclass(frozen=True)
class UsageRecord:
    """Usage of one feature by one subject. Always handed out as a snapshot."""

    subject_id: str
    feature_slug: str
    current_usage: int = 0
    limit: int | None = None  # None and 0 both mean unlimited
    updated_at: datetime = field(default_factory=_utcnow)
    created_at: datetime = field(default_factory=_utcnow)
    last_reset_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.current_usage < 0:
            msg = f"current_usage cannot be negative: {self.current_usage}"
            raise ValueError(msg)
        if self.limit is not None and self.limit < 0:
            msg = f"limit cannot be negative: {self.limit}"
            raise ValueError(msg)

    @property
    def key(self) -> tuple[str, str]:
        return (self.subject_id, self.feature_slug)


@dataclass(frozen=True)
class UsageEvaluation:
    """Decision and display values derived from a counter and a limit.

    ``current_usage`` is the raw, unclamped counter; ``percentage`` is the
    display metric clamped to [0, 100]. Overage shows up only in the former.
    """

    current_usage: int
    limit: int | None
    is_unlimited: bool
    is_exceeded: bool
    remaining: float  # UNLIMITED when is_unlimited
    percentage: float
    can_perform: bool
    severity: Severity
    color: ColorBand
    status_label: str
    display: str


@dataclass(frozen=True)
class FeatureUsageStats:
    """Aggregate usage of one feature across all subjects."""

    feature_slug: str
    total_usage: int = 0
    average_usage: float = 0.0
    max_usage: int = 0
    users_using_it: int = 0
