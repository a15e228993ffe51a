"""SaaS Guard usage layer — quota accounting, limit resolution and evaluation."""

from src.saas.facade import LogNotifier, Notifier, SubjectUsageFacade, UsageFacade
from src.saas.plans import PLAN_FEATURE_LIMITS, LimitOverride, Plan, PlanLimitResolver, SubjectContext
from src.saas.store import InMemoryUsageStore
from src.saas.usage import UsageLedger

__all__ = [
    "InMemoryUsageStore",
    "LimitOverride",
    "LogNotifier",
    "Notifier",
    "PLAN_FEATURE_LIMITS",
    "Plan",
    "PlanLimitResolver",
    "SubjectContext",
    "SubjectUsageFacade",
    "UsageFacade",
    "UsageLedger",
]
