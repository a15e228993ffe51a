"""Plan limits and overrides — resolves the quota a subject has for a feature.

Each subject is assigned a plan. The plan gives a base limit per feature,
and administrators can raise a limit for one user or a whole organization
with a ``limit_increase`` override (optionally time-boxed).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from src.core.constants import (
    FEATURE_API_CALLS,
    FEATURE_EXPORTS,
    FEATURE_PROJECTS,
    FEATURE_TEAM_MEMBERS,
    OVERRIDE_FEATURE_DISABLE,
    OVERRIDE_FEATURE_ENABLE,
    OVERRIDE_LIMIT_INCREASE,
)
from src.core.exceptions import ValidationError
from src.core.interfaces import BaseLimitResolver
from src.core.logging import get_logger

log = get_logger(__name__)


class Plan(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


# None = unlimited
PLAN_FEATURE_LIMITS: dict[Plan, dict[str, int | None]] = {
    Plan.FREE: {
        FEATURE_API_CALLS: 100,
        FEATURE_PROJECTS: 3,
        FEATURE_TEAM_MEMBERS: 1,
        FEATURE_EXPORTS: 10,
    },
    Plan.STARTER: {
        FEATURE_API_CALLS: 1_000,
        FEATURE_PROJECTS: 20,
        FEATURE_TEAM_MEMBERS: 5,
        FEATURE_EXPORTS: 100,
    },
    Plan.PRO: {
        FEATURE_API_CALLS: 10_000,
        FEATURE_PROJECTS: 100,
        FEATURE_TEAM_MEMBERS: 25,
        FEATURE_EXPORTS: 1_000,
    },
    Plan.ENTERPRISE: {
        FEATURE_API_CALLS: None,
        FEATURE_PROJECTS: None,
        FEATURE_TEAM_MEMBERS: None,
        FEATURE_EXPORTS: None,
    },
}


OVERRIDE_TYPES = frozenset({OVERRIDE_FEATURE_ENABLE, OVERRIDE_FEATURE_DISABLE, OVERRIDE_LIMIT_INCREASE})


@dataclass(frozen=True)
class SubjectContext:
    """What the resolver knows about the subject at call time."""

    subject_id: str
    plan: Plan | None = None
    organization_id: str | None = None


@dataclass(frozen=True)
class LimitOverride:
    """Administrative adjustment for one user or one organization."""

    feature_slug: str
    override_type: str  # one of OVERRIDE_TYPES; only limit_increase changes limits
    value: str | None = None
    subject_id: str | None = None
    organization_id: str | None = None
    reason: str = ""
    expires_at: datetime | None = None

    def is_active(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > (now or datetime.now(timezone.utc))

    def applies_to(self, context: SubjectContext) -> bool:
        if self.subject_id is not None:
            return self.subject_id == context.subject_id
        if self.organization_id is not None:
            return self.organization_id == context.organization_id
        return False


@dataclass
class PlanLimitResolver(BaseLimitResolver):
    """Resolves limits from the plan table plus active ``limit_increase`` overrides.

    Nothing is cached: every call reads the current assignments and
    overrides, so a plan change takes effect on the next ``record_usage``.
    """

    default_plan: Plan = Plan.FREE
    plan_limits: dict[Plan, dict[str, int | None]] = field(
        default_factory=lambda: {plan: dict(limits) for plan, limits in PLAN_FEATURE_LIMITS.items()}
    )
    _plans: dict[str, Plan] = field(default_factory=dict, init=False, repr=False)
    _overrides: list[LimitOverride] = field(default_factory=list, init=False, repr=False)

    def assign_plan(self, subject_id: str, plan: Plan) -> None:
        old_plan = self._plans.get(subject_id, self.default_plan)
        self._plans[subject_id] = plan
        log.info("plan_assigned", subject_id=subject_id, old=old_plan.value, new=plan.value)

    def plan_for(self, context: SubjectContext) -> Plan:
        if context.plan is not None:
            return context.plan
        return self._plans.get(context.subject_id, self.default_plan)

    def add_override(self, override: LimitOverride) -> None:
        if override.override_type not in OVERRIDE_TYPES:
            msg = f"unknown override type {override.override_type!r}"
            raise ValidationError(msg, {"feature_slug": override.feature_slug})
        if override.override_type == OVERRIDE_LIMIT_INCREASE:
            try:
                increase = int(override.value or "")
            except ValueError:
                increase = 0
            if increase <= 0:
                msg = f"limit_increase override needs a positive integer value, got {override.value!r}"
                raise ValidationError(msg, {"feature_slug": override.feature_slug})
        if override.subject_id is None and override.organization_id is None:
            msg = "override must target a subject or an organization"
            raise ValidationError(msg, {"feature_slug": override.feature_slug})
        self._overrides.append(override)
        log.info(
            "override_added",
            feature_slug=override.feature_slug,
            override_type=override.override_type,
            subject_id=override.subject_id,
            organization_id=override.organization_id,
        )

    def remove_overrides(self, feature_slug: str, subject_id: str | None = None) -> int:
        """Drop overrides for a feature (optionally only one user's). Returns count removed."""
        kept = [
            o for o in self._overrides
            if not (o.feature_slug == feature_slug and (subject_id is None or o.subject_id == subject_id))
        ]
        removed = len(self._overrides) - len(kept)
        self._overrides = kept
        return removed

    async def resolve_limit(self, feature_slug: str, context: SubjectContext) -> int | None:
        plan = self.plan_for(context)
        base = self.plan_limits.get(plan, {}).get(feature_slug)
        if not base:
            # Unknown feature, unlimited, or zero: all unlimited
            return None

        now = datetime.now(timezone.utc)
        increase = sum(
            int(o.value or "0")
            for o in self._overrides
            if o.feature_slug == feature_slug
            and o.override_type == OVERRIDE_LIMIT_INCREASE
            and o.is_active(now)
            and o.applies_to(context)
        )
        return base + increase
