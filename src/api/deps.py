"""FastAPI dependency injection — shared instances for routes."""

from __future__ import annotations

from config.settings import get_settings
from src.api.db.usage import UsageRepository
from src.core.interfaces import BaseUsageStore
from src.core.logging import get_logger
from src.data.db import get_engine
from src.saas.plans import Plan, PlanLimitResolver
from src.saas.store import InMemoryUsageStore
from src.saas.usage import UsageLedger

log = get_logger(__name__)

_ledger: UsageLedger | None = None
_resolver: PlanLimitResolver | None = None


# ── Limit resolver ────────────────────────────────────────────────


def get_limit_resolver() -> PlanLimitResolver:
    """Provide the process-wide plan/override resolver."""
    global _resolver  # noqa: PLW0603
    if _resolver is None:
        _resolver = PlanLimitResolver(default_plan=Plan(get_settings().default_plan))
    return _resolver


# ── Usage ledger ──────────────────────────────────────────────────


async def _build_store() -> BaseUsageStore:
    settings = get_settings()
    if settings.usage_store == "postgres":
        return UsageRepository(await get_engine())
    return InMemoryUsageStore()


async def get_usage_ledger() -> UsageLedger:
    """Provide the singleton UsageLedger, wired to the configured store."""
    global _ledger  # noqa: PLW0603
    if _ledger is None:
        store = await _build_store()
        _ledger = UsageLedger(store, get_limit_resolver())
        log.info("usage_ledger_created", store=type(store).__name__)
    return _ledger


def reset_dependencies() -> None:
    """Drop cached singletons (used on shutdown and by tests)."""
    global _ledger, _resolver  # noqa: PLW0603
    _ledger = None
    _resolver = None
