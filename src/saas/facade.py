"""Client-facing usage façades — what a dashboard view binds to.

``UsageFacade`` tracks one (subject, feature) counter with optional
polling; ``SubjectUsageFacade`` tracks every counter for one subject.
Both keep the last good snapshot on failure and report the error through
``error``/``error_kind`` plus a notifier.

Reads carry a generation number. A read result is applied only if no newer
read, write or retarget started after it, so a slow response can never
overwrite fresher state. Writes are shielded: cancelling the caller does
not cancel the ledger call, which still commits.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import replace
from types import TracebackType
from typing import Protocol

from config.settings import Settings
from src.core.constants import DEFAULT_REFRESH_INTERVAL_SECONDS
from src.core.exceptions import ErrorKind, GuardBaseError
from src.core.logging import get_logger
from src.core.types import UsageEvaluation, UsageRecord
from src.saas import evaluator
from src.saas.usage import UsageLedger

log = get_logger(__name__)


class Notifier(Protocol):
    """Transient user-facing messages (toasts)."""

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """Notifier that only writes to the log."""

    def success(self, message: str) -> None:
        log.info("notify_success", message=message)

    def error(self, message: str) -> None:
        log.warning("notify_error", message=message)


class UsageFacade:
    """Live view of one subject's usage of one feature."""

    def __init__(
        self,
        ledger: UsageLedger,
        subject_id: str | None,
        feature_slug: str | None,
        *,
        auto_refresh: bool = False,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        notifier: Notifier | None = None,
    ) -> None:
        if refresh_interval <= 0:
            msg = f"refresh_interval must be positive: {refresh_interval}"
            raise ValueError(msg)
        self._ledger = ledger
        self._subject_id = subject_id
        self._feature_slug = feature_slug
        self._auto_refresh = auto_refresh
        self._refresh_interval = refresh_interval
        self._notifier: Notifier = notifier or LogNotifier()

        self.usage: UsageRecord | None = None
        self.error: str | None = None
        self.error_kind: ErrorKind | None = None
        self._generation = 0
        self._pending_reads = 0
        self._poll_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        ledger: UsageLedger,
        subject_id: str | None,
        feature_slug: str | None,
        settings: Settings,
        notifier: Notifier | None = None,
    ) -> UsageFacade:
        return cls(
            ledger,
            subject_id,
            feature_slug,
            auto_refresh=settings.usage_auto_refresh,
            refresh_interval=settings.usage_refresh_interval_seconds,
            notifier=notifier,
        )

    # ── State ─────────────────────────────────────────────────────

    @property
    def subject_id(self) -> str | None:
        return self._subject_id

    @property
    def feature_slug(self) -> str | None:
        return self._feature_slug

    @property
    def has_target(self) -> bool:
        return bool(self._subject_id) and bool(self._feature_slug)

    @property
    def is_loading(self) -> bool:
        return self._pending_reads > 0

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def evaluation(self) -> UsageEvaluation | None:
        if self.usage is None:
            return None
        return evaluator.evaluate(self.usage.current_usage, self.usage.limit)

    def _set_error(self, exc: GuardBaseError) -> None:
        self.error = exc.message
        self.error_kind = exc.kind

    def _clear_error(self) -> None:
        self.error = None
        self.error_kind = None

    def _is_current_target(self, subject_id: str | None, feature_slug: str | None) -> bool:
        return (subject_id, feature_slug) == (self._subject_id, self._feature_slug)

    # ── Actions ───────────────────────────────────────────────────

    async def refresh(self) -> None:
        """Re-read the counter. A failed read keeps whatever was shown before."""
        if not self.has_target:
            return
        subject_id, feature_slug = self._subject_id, self._feature_slug
        self._generation += 1
        generation = self._generation
        self._pending_reads += 1
        self._clear_error()
        try:
            snapshot = await self._ledger.get_usage(subject_id, feature_slug)  # type: ignore[arg-type]
        except GuardBaseError as exc:
            if generation == self._generation:
                self._set_error(exc)
            log.warning(
                "usage_refresh_failed",
                subject_id=subject_id,
                feature_slug=feature_slug,
                kind=exc.kind.value,
            )
            return
        finally:
            self._pending_reads -= 1

        if generation == self._generation:
            self.usage = snapshot
        else:
            log.debug("usage_refresh_discarded", subject_id=subject_id, feature_slug=feature_slug)

    async def record(self, amount: int = 1) -> UsageRecord | None:
        """Record usage and show the new snapshot. Re-raises after notifying on failure."""
        if not self.has_target:
            return None
        subject_id, feature_slug = self._subject_id, self._feature_slug
        try:
            snapshot = await asyncio.shield(
                self._ledger.record_usage(subject_id, feature_slug, amount)  # type: ignore[arg-type]
            )
        except GuardBaseError as exc:
            self._set_error(exc)
            self._notifier.error(exc.message or "Failed to record usage")
            raise

        if self._is_current_target(subject_id, feature_slug):
            self._generation += 1
            self.usage = snapshot
            self._clear_error()
        return snapshot

    async def reset(self) -> None:
        """Reset the counter to zero. Re-raises after notifying on failure."""
        if not self.has_target:
            return
        subject_id, feature_slug = self._subject_id, self._feature_slug
        try:
            await asyncio.shield(
                self._ledger.reset_usage(subject_id, feature_slug)  # type: ignore[arg-type]
            )
        except GuardBaseError as exc:
            self._set_error(exc)
            self._notifier.error(exc.message or "Failed to reset usage")
            raise

        if self._is_current_target(subject_id, feature_slug) and self.usage is not None:
            self._generation += 1
            self.usage = replace(self.usage, current_usage=0)
        self._notifier.success("Usage reset successfully")

    async def retarget(self, subject_id: str | None, feature_slug: str | None) -> None:
        """Point the façade at another key; polling restarts only if both ids are set."""
        self.stop()
        if not self._is_current_target(subject_id, feature_slug):
            self.usage = None
            self._clear_error()
        self._subject_id = subject_id
        self._feature_slug = feature_slug
        self._generation += 1
        self.start()
        await self.refresh()

    # ── Polling ───────────────────────────────────────────────────

    def configure_auto_refresh(self, enabled: bool, refresh_interval: float | None = None) -> None:
        if refresh_interval is not None:
            if refresh_interval <= 0:
                msg = f"refresh_interval must be positive: {refresh_interval}"
                raise ValueError(msg)
            self._refresh_interval = refresh_interval
        self._auto_refresh = enabled
        self.stop()
        self.start()

    def start(self) -> None:
        """Begin polling if enabled and targeted. Never starts a second timer."""
        if not self._auto_refresh or not self.has_target or self.is_polling:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        log.debug(
            "usage_polling_started",
            subject_id=self._subject_id,
            feature_slug=self._feature_slug,
            interval=self._refresh_interval,
        )

    def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def close(self) -> None:
        task = self._poll_task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                await self.refresh()
            except Exception:
                log.error("usage_poll_failed", subject_id=self._subject_id, exc_info=True)

    async def __aenter__(self) -> UsageFacade:
        await self.refresh()
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class SubjectUsageFacade:
    """Every usage counter of one subject, loaded once and refreshed on demand."""

    def __init__(
        self,
        ledger: UsageLedger,
        subject_id: str | None,
        notifier: Notifier | None = None,
    ) -> None:
        self._ledger = ledger
        self._subject_id = subject_id
        self._notifier: Notifier = notifier or LogNotifier()

        self.usage_list: list[UsageRecord] = []
        self.error: str | None = None
        self.error_kind: ErrorKind | None = None
        self.has_fetched = False
        self._generation = 0
        self._pending_reads = 0

    @property
    def subject_id(self) -> str | None:
        return self._subject_id

    @property
    def is_loading(self) -> bool:
        return self._pending_reads > 0

    async def refresh(self) -> None:
        if not self._subject_id:
            return
        subject_id = self._subject_id
        self._generation += 1
        generation = self._generation
        self._pending_reads += 1
        self.error = None
        self.error_kind = None
        try:
            records = await self._ledger.list_usage_for_subject(subject_id)
        except GuardBaseError as exc:
            if generation == self._generation:
                self.error = exc.message
                self.error_kind = exc.kind
                self.has_fetched = True
            log.warning("subject_usage_refresh_failed", subject_id=subject_id, kind=exc.kind.value)
            return
        finally:
            self._pending_reads -= 1

        if generation == self._generation:
            self.usage_list = records
            self.has_fetched = True

    async def ensure_loaded(self) -> None:
        """Fetch once per subject; later calls are no-ops until ``retarget``."""
        if self._subject_id and not self.has_fetched and not self.is_loading:
            await self.refresh()

    async def reset(self, feature_slug: str) -> bool:
        """Reset one feature's counter. Failures land in ``error`` and the notifier."""
        if not self._subject_id:
            return False
        subject_id = self._subject_id
        try:
            await asyncio.shield(self._ledger.reset_usage(subject_id, feature_slug))
        except GuardBaseError as exc:
            self.error = exc.message
            self.error_kind = exc.kind
            self._notifier.error(exc.message or "Failed to reset usage")
            return False

        if subject_id == self._subject_id:
            self._generation += 1
            self.usage_list = [
                replace(r, current_usage=0) if r.feature_slug == feature_slug else r
                for r in self.usage_list
            ]
        self._notifier.success("Usage reset successfully")
        return True

    async def retarget(self, subject_id: str | None) -> None:
        if subject_id != self._subject_id:
            self.usage_list = []
            self.error = None
            self.error_kind = None
            self.has_fetched = False
        self._subject_id = subject_id
        self._generation += 1
        # A read for the previous subject may still be pending; don't wait on it
        if self._subject_id and not self.has_fetched:
            await self.refresh()
