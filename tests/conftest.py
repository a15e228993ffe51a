"""Pytest configuration, shared fixtures and the async test runner.

Ledger and façade tests are coroutines marked with ``@pytest.mark.asyncio``.
When no async plugin is installed, ``pytest_pyfunc_call`` below runs them on
a fresh event loop via ``run_until_complete``.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any

import pytest

from src.saas.plans import PlanLimitResolver
from src.saas.store import InMemoryUsageStore
from src.saas.usage import UsageLedger


def pytest_configure(config: pytest.Config) -> None:
    """Register local markers used in the suite."""
    config.addinivalue_line("markers", "asyncio: mark test as asyncio-compatible")


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``@pytest.mark.asyncio`` tests without external plugins.

    If pytest-asyncio (or another async plugin) is installed, this hook may be
    bypassed by that plugin depending on hook ordering.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    kwargs: dict[str, Any] = {
        arg: pyfuncitem.funcargs[arg]
        for arg in pyfuncitem._fixtureinfo.argnames
    }
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_func(**kwargs))
    finally:
        loop.close()
        asyncio.set_event_loop(asyncio.new_event_loop())
    return True


@pytest.fixture()
def store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture()
def resolver() -> PlanLimitResolver:
    return PlanLimitResolver()


@pytest.fixture()
def ledger(store: InMemoryUsageStore, resolver: PlanLimitResolver) -> UsageLedger:
    return UsageLedger(store, resolver)
