"""Tests for the client usage façades — refresh, polling, stale results, failures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from config.settings import Settings
from src.core.exceptions import ErrorKind, UnavailableError
from src.core.types import ColorBand, UsageRecord
from src.saas.facade import SubjectUsageFacade, UsageFacade
from src.saas.plans import PlanLimitResolver, SubjectContext
from src.saas.store import InMemoryUsageStore
from src.saas.usage import UsageLedger


class _RecordingNotifier:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class _GatedLedger(UsageLedger):
    """Ledger whose calls can be held open until a gate is released."""

    def __init__(self) -> None:
        super().__init__(InMemoryUsageStore(), PlanLimitResolver())
        self.hold: asyncio.Event | None = None
        self.fail = False

    async def get_usage(
        self,
        subject_id: str,
        feature_slug: str,
        *,
        limit: int | None = None,
        context: SubjectContext | None = None,
    ) -> UsageRecord:
        gate = self.hold
        if self.fail:
            raise UnavailableError("usage store unavailable")
        snapshot = await super().get_usage(subject_id, feature_slug, limit=limit, context=context)
        if gate is not None:
            await gate.wait()
        return snapshot

    async def record_usage(  # type: ignore[override]
        self, subject_id: str, feature_slug: str, amount: int = 1, **kwargs: object
    ) -> UsageRecord:
        gate = self.hold
        if gate is not None:
            await gate.wait()
        if self.fail:
            raise UnavailableError("usage store unavailable")
        return await super().record_usage(subject_id, feature_slug, amount)

    async def reset_usage(
        self,
        subject_id: str,
        feature_slug: str,
        *,
        limit: int | None = None,
        context: SubjectContext | None = None,
    ) -> None:
        if self.fail:
            raise UnavailableError("usage store unavailable")
        await super().reset_usage(subject_id, feature_slug, limit=limit, context=context)

    async def list_usage_for_subject(  # type: ignore[override]
        self, subject_id: str, **kwargs: Any
    ) -> list[UsageRecord]:
        if self.fail:
            raise UnavailableError("usage store unavailable")
        return await super().list_usage_for_subject(subject_id, **kwargs)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_loads_snapshot(self) -> None:
        ledger = _GatedLedger()
        await ledger.record_usage("u1", "api_calls", 95)
        facade = UsageFacade(ledger, "u1", "api_calls")

        await facade.refresh()

        assert facade.usage is not None
        assert facade.usage.current_usage == 95
        assert facade.is_loading is False
        assert facade.evaluation is not None
        assert facade.evaluation.color == ColorBand.RED

    @pytest.mark.asyncio
    async def test_missing_identifier_is_noop(self) -> None:
        facade = UsageFacade(_GatedLedger(), None, "api_calls", auto_refresh=True)
        await facade.refresh()
        facade.start()
        assert facade.usage is None
        assert facade.is_polling is False
        assert await facade.record() is None

    @pytest.mark.asyncio
    async def test_stale_response_discarded(self) -> None:
        ledger = _GatedLedger()
        facade = UsageFacade(ledger, "u1", "api_calls")

        gate = asyncio.Event()
        ledger.hold = gate
        slow = asyncio.get_running_loop().create_task(facade.refresh())
        await _settle()
        assert facade.is_loading is True

        ledger.hold = None
        await ledger.record_usage("u1", "api_calls", 5)
        await facade.refresh()
        assert facade.usage is not None
        assert facade.usage.current_usage == 5

        gate.set()
        await slow
        assert facade.usage.current_usage == 5
        assert facade.is_loading is False

    @pytest.mark.asyncio
    async def test_initial_failure_reports_error_without_data(self) -> None:
        ledger = _GatedLedger()
        ledger.fail = True
        facade = UsageFacade(ledger, "u1", "api_calls")

        await facade.refresh()

        assert facade.usage is None
        assert facade.error == "usage store unavailable"
        assert facade.error_kind is ErrorKind.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_later_failure_keeps_last_snapshot(self) -> None:
        ledger = _GatedLedger()
        facade = UsageFacade(ledger, "u1", "api_calls")
        await facade.record(3)

        ledger.fail = True
        await facade.refresh()

        assert facade.usage is not None
        assert facade.usage.current_usage == 3
        assert facade.error_kind is ErrorKind.UNAVAILABLE


class TestMutations:
    @pytest.mark.asyncio
    async def test_record_updates_snapshot(self) -> None:
        facade = UsageFacade(_GatedLedger(), "u1", "api_calls")
        snapshot = await facade.record(2)
        assert snapshot is not None
        assert facade.usage == snapshot
        assert facade.usage.current_usage == 2

    @pytest.mark.asyncio
    async def test_record_failure_notifies_and_raises(self) -> None:
        ledger = _GatedLedger()
        notifier = _RecordingNotifier()
        facade = UsageFacade(ledger, "u1", "api_calls", notifier=notifier)
        await facade.record(4)

        ledger.fail = True
        with pytest.raises(UnavailableError):
            await facade.record(1)

        assert notifier.errors == ["usage store unavailable"]
        assert facade.usage is not None
        assert facade.usage.current_usage == 4
        assert facade.error == "usage store unavailable"

    @pytest.mark.asyncio
    async def test_reset_zeroes_and_notifies(self) -> None:
        notifier = _RecordingNotifier()
        facade = UsageFacade(_GatedLedger(), "u1", "api_calls", notifier=notifier)
        await facade.record(10)

        await facade.reset()

        assert facade.usage is not None
        assert facade.usage.current_usage == 0
        assert notifier.successes == ["Usage reset successfully"]

    @pytest.mark.asyncio
    async def test_reset_failure_keeps_snapshot(self) -> None:
        ledger = _GatedLedger()
        notifier = _RecordingNotifier()
        facade = UsageFacade(ledger, "u1", "api_calls", notifier=notifier)
        await facade.record(10)

        ledger.fail = True
        with pytest.raises(UnavailableError):
            await facade.reset()

        assert facade.usage is not None
        assert facade.usage.current_usage == 10
        assert notifier.errors == ["usage store unavailable"]

    @pytest.mark.asyncio
    async def test_cancelled_record_still_commits(self) -> None:
        ledger = _GatedLedger()
        facade = UsageFacade(ledger, "u1", "api_calls")

        gate = asyncio.Event()
        ledger.hold = gate
        task = asyncio.get_running_loop().create_task(facade.record(1))
        await _settle()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        ledger.hold = None
        gate.set()
        await _settle()

        record = await ledger.get_usage("u1", "api_calls")
        assert record.current_usage == 1


class TestPolling:
    @pytest.mark.asyncio
    async def test_auto_refresh_picks_up_changes(self) -> None:
        ledger = _GatedLedger()
        facade = UsageFacade(ledger, "u1", "api_calls", auto_refresh=True, refresh_interval=0.01)
        async with facade:
            assert facade.is_polling is True
            await ledger.record_usage("u1", "api_calls", 7)
            await asyncio.sleep(0.05)
            assert facade.usage is not None
            assert facade.usage.current_usage == 7
        assert facade.is_polling is False

    @pytest.mark.asyncio
    async def test_disabled_by_default(self) -> None:
        facade = UsageFacade(_GatedLedger(), "u1", "api_calls")
        facade.start()
        assert facade.is_polling is False

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_timer(self) -> None:
        facade = UsageFacade(_GatedLedger(), "u1", "api_calls", auto_refresh=True)
        facade.start()
        first = facade._poll_task
        facade.start()
        assert facade._poll_task is first
        await facade.close()

    @pytest.mark.asyncio
    async def test_retarget_to_none_stops_then_restarts(self) -> None:
        ledger = _GatedLedger()
        await ledger.record_usage("u2", "exports", 2)
        facade = UsageFacade(ledger, "u1", "api_calls", auto_refresh=True)
        facade.start()

        await facade.retarget(None, "api_calls")
        assert facade.is_polling is False
        assert facade.usage is None

        await facade.retarget("u2", "exports")
        assert facade.is_polling is True
        assert facade.usage is not None
        assert facade.usage.current_usage == 2
        await facade.close()
        await _settle()

    @pytest.mark.asyncio
    async def test_configure_auto_refresh(self) -> None:
        facade = UsageFacade(_GatedLedger(), "u1", "api_calls")
        facade.configure_auto_refresh(True, refresh_interval=5)
        assert facade.is_polling is True
        facade.configure_auto_refresh(False)
        assert facade.is_polling is False
        await _settle()

    def test_bad_interval_rejected(self) -> None:
        with pytest.raises(ValueError):
            UsageFacade(_GatedLedger(), "u1", "api_calls", refresh_interval=0)

    def test_from_settings(self) -> None:
        settings = Settings(usage_auto_refresh=True, usage_refresh_interval_seconds=12.5)
        facade = UsageFacade.from_settings(_GatedLedger(), "u1", "api_calls", settings)
        assert facade._auto_refresh is True
        assert facade._refresh_interval == 12.5


class TestSubjectUsageFacade:
    @pytest.mark.asyncio
    async def test_loads_once(self) -> None:
        ledger = _GatedLedger()
        await ledger.record_usage("u1", "api_calls", 1)
        await ledger.record_usage("u1", "exports", 2)
        facade = SubjectUsageFacade(ledger, "u1")

        await facade.ensure_loaded()
        assert facade.has_fetched is True
        assert [r.feature_slug for r in facade.usage_list] == ["api_calls", "exports"]

        await ledger.record_usage("u1", "projects", 1)
        await facade.ensure_loaded()
        assert len(facade.usage_list) == 2

        await facade.refresh()
        assert len(facade.usage_list) == 3

    @pytest.mark.asyncio
    async def test_reset_updates_matching_entry(self) -> None:
        ledger = _GatedLedger()
        await ledger.record_usage("u1", "api_calls", 5)
        await ledger.record_usage("u1", "exports", 3)
        notifier = _RecordingNotifier()
        facade = SubjectUsageFacade(ledger, "u1", notifier=notifier)
        await facade.refresh()

        assert await facade.reset("api_calls") is True

        usage = {r.feature_slug: r.current_usage for r in facade.usage_list}
        assert usage == {"api_calls": 0, "exports": 3}
        assert notifier.successes == ["Usage reset successfully"]

    @pytest.mark.asyncio
    async def test_reset_failure_sets_error(self) -> None:
        ledger = _GatedLedger()
        await ledger.record_usage("u1", "api_calls", 5)
        notifier = _RecordingNotifier()
        facade = SubjectUsageFacade(ledger, "u1", notifier=notifier)
        await facade.refresh()

        ledger.fail = True
        assert await facade.reset("api_calls") is False
        assert facade.error_kind is ErrorKind.UNAVAILABLE
        assert facade.usage_list[0].current_usage == 5
        assert notifier.errors == ["usage store unavailable"]

    @pytest.mark.asyncio
    async def test_fetch_failure_marks_fetched(self) -> None:
        ledger = _GatedLedger()
        ledger.fail = True
        facade = SubjectUsageFacade(ledger, "u1")
        await facade.ensure_loaded()
        assert facade.has_fetched is True
        assert facade.usage_list == []
        assert facade.error == "usage store unavailable"

    @pytest.mark.asyncio
    async def test_retarget_reloads(self) -> None:
        ledger = _GatedLedger()
        await ledger.record_usage("u2", "exports", 4)
        facade = SubjectUsageFacade(ledger, None)
        await facade.ensure_loaded()
        assert facade.has_fetched is False

        await facade.retarget("u2")
        assert facade.has_fetched is True
        assert facade.usage_list[0].current_usage == 4
