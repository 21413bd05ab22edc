"""Per-account refresh timers for live subscribers.

Each tracked account owns exactly one :class:`ScheduledRun`. A run goes
``scheduled -> running -> scheduled`` until it is cancelled; the next timer is
only armed after the current run has finished, so passes for one account never
overlap. Accounts are independent of each other.

Every pass over an account, timed or manual, first claims the account in
``SubscriberRegistry.busy`` and releases it when done. A timer armed while the
account is claimed is parked and started on release.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from seatsync.settings import EngineSettings
from seatsync.utils.logger import logger

RunCallback = Callable[[str, str], Awaitable[None]]


class RunState(str, Enum):
    scheduled = "scheduled"
    running = "running"
    cancelled = "cancelled"


@dataclass
class ScheduledRun:
    account_id: str
    subscriber: str
    delay: float
    due_at: float
    state: RunState = RunState.scheduled
    handle: Optional[asyncio.TimerHandle] = None
    task: Optional[asyncio.Task] = None
    rearm_delay: Optional[float] = None

    @property
    def parked(self) -> bool:
        """Waiting for another pass on the account to release it."""
        return self.state is RunState.scheduled and self.handle is None and self.rearm_delay is not None


@dataclass
class SubscriberRegistry:
    """Who watches what. Owned by one engine instance."""

    runs: dict[str, ScheduledRun] = field(default_factory=dict)
    accounts_by_subscriber: dict[str, list[str]] = field(default_factory=dict)
    channels: dict[str, Any] = field(default_factory=dict)
    # account id -> event set when the pass holding it ends
    busy: dict[str, asyncio.Event] = field(default_factory=dict)

    def add_account(self, subscriber: str, account_id: str) -> None:
        owned = self.accounts_by_subscriber.setdefault(subscriber, [])
        if account_id not in owned:
            owned.append(account_id)

    def remove_account(self, account_id: str) -> Optional[ScheduledRun]:
        run = self.runs.pop(account_id, None)
        for owned in self.accounts_by_subscriber.values():
            if account_id in owned:
                owned.remove(account_id)
        return run

    def channel_open(self, subscriber: str) -> bool:
        channel = self.channels.get(subscriber)
        return channel is not None and channel.is_open

    def claim(self, account_id: str) -> bool:
        if account_id in self.busy:
            return False
        self.busy[account_id] = asyncio.Event()
        return True

    def release(self, account_id: str) -> None:
        done = self.busy.pop(account_id, None)
        if done is not None:
            done.set()


class Scheduler:
    def __init__(
        self,
        registry: SubscriberRegistry,
        run: RunCallback,
        settings: EngineSettings | None = None,
    ):
        self.registry = registry
        self._run = run
        self.settings = settings or EngineSettings()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Arming
    # ------------------------------------------------------------------

    def track(self, subscriber: str, account_ids: list[str]) -> list[float]:
        """Arm first runs staggered by ``stagger_seconds`` and return the delays."""
        delays = []
        for index, account_id in enumerate(account_ids):
            delay = index * self.settings.stagger_seconds
            self.arm(subscriber, account_id, delay)
            delays.append(delay)
        logger.info("scheduler.track", extra={"subscriber": subscriber, "accounts": len(account_ids)})
        return delays

    def arm(self, subscriber: str, account_id: str, delay: float) -> None:
        """(Re)schedule ``account_id`` to run after ``delay`` seconds.

        An account that is running right now, or held by any other pass, is
        re-armed when that pass ends.
        """
        self.registry.add_account(subscriber, account_id)
        current = self.registry.runs.get(account_id)
        if current is not None and current.state is RunState.running:
            current.rearm_delay = _sooner(current.rearm_delay, delay)
            return
        if current is not None and current.handle is not None:
            current.handle.cancel()

        loop = asyncio.get_running_loop()
        run = ScheduledRun(account_id=account_id, subscriber=subscriber, delay=delay, due_at=loop.time() + delay)
        self.registry.runs[account_id] = run
        if account_id in self.registry.busy:
            run.rearm_delay = _sooner(current.rearm_delay if current is not None and current.parked else None, delay)
            return
        run.handle = loop.call_later(delay, self._fire, account_id)

    def _fire(self, account_id: str) -> None:
        run = self.registry.runs.get(account_id)
        if run is None or run.state is not RunState.scheduled:
            return
        run.handle = None
        if not self.registry.claim(account_id):
            # another pass holds the account; keep the regular cadence
            self.arm(run.subscriber, account_id, self.settings.refresh_interval_seconds)
            return
        run.state = RunState.running
        run.task = asyncio.create_task(self._execute(run))
        self._tasks.add(run.task)
        run.task.add_done_callback(self._tasks.discard)

    async def _execute(self, run: ScheduledRun) -> None:
        try:
            await self._run(run.subscriber, run.account_id)
        except Exception:
            logger.exception(f"Scheduled refresh failed for account {run.account_id}")
        finally:
            self.registry.release(run.account_id)
            self._after_run(run)

    def _after_run(self, run: ScheduledRun) -> None:
        run.task = None
        if run.state is RunState.cancelled or self.registry.runs.get(run.account_id) is not run:
            self._start_parked(run.account_id)
            return
        if not self.registry.channel_open(run.subscriber):
            self.cancel(run.account_id)
            return
        run.state = RunState.scheduled
        delay = run.rearm_delay if run.rearm_delay is not None else self.settings.refresh_interval_seconds
        self.arm(run.subscriber, run.account_id, delay)

    def _start_parked(self, account_id: str) -> None:
        run = self.registry.runs.get(account_id)
        if run is not None and run.parked and account_id not in self.registry.busy:
            self.arm(run.subscriber, account_id, run.rearm_delay)

    # ------------------------------------------------------------------
    # Exclusive passes outside the timers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def exclusive(self, account_id: str) -> AsyncIterator[None]:
        """Hold ``account_id`` for a manual pass, waiting out any pass already on it."""
        while not self.registry.claim(account_id):
            await self.registry.busy[account_id].wait()
        try:
            yield
        finally:
            self.release(account_id)

    def release(self, account_id: str) -> None:
        self.registry.release(account_id)
        self._start_parked(account_id)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, account_id: str) -> bool:
        """Stop tracking ``account_id``. An in-flight run finishes but is not re-armed."""
        run = self.registry.remove_account(account_id)
        if run is None:
            return False
        run.state = RunState.cancelled
        if run.handle is not None:
            run.handle.cancel()
            run.handle = None
        return True

    def cancel_subscriber(self, subscriber: str) -> int:
        owned = list(self.registry.accounts_by_subscriber.get(subscriber, []))
        for account_id in owned:
            self.cancel(account_id)
        self.registry.accounts_by_subscriber.pop(subscriber, None)
        self.registry.channels.pop(subscriber, None)
        return len(owned)

    def is_tracked(self, account_id: str) -> bool:
        return account_id in self.registry.runs

    def shutdown(self) -> None:
        """Cancel every timer and any run still in flight."""
        for task in list(self._tasks):
            task.cancel()
        for subscriber in list(self.registry.accounts_by_subscriber):
            self.cancel_subscriber(subscriber)
        for account_id in list(self.registry.runs):
            self.cancel(account_id)

    # ------------------------------------------------------------------
    # Manual trigger
    # ------------------------------------------------------------------

    async def refresh_all(self, subscriber: str) -> int:
        """Run every account of ``subscriber`` now, one after another.

        Standing timers are left as they are. Accounts another pass is
        holding are skipped. Returns how many accounts were refreshed.
        """
        refreshed = 0
        owned = list(self.registry.accounts_by_subscriber.get(subscriber, []))
        for index, account_id in enumerate(owned):
            if index:
                await asyncio.sleep(self.settings.refresh_all_pause_seconds)
            if account_id not in self.registry.runs:
                continue
            if not self.registry.claim(account_id):
                logger.debug(f"Manual refresh skipped account {account_id}: another pass is running")
                continue
            try:
                await self._run(subscriber, account_id)
                refreshed += 1
            except Exception:
                logger.exception(f"Manual refresh failed for account {account_id}")
            finally:
                self.release(account_id)
        return refreshed


def _sooner(current: Optional[float], delay: float) -> float:
    return delay if current is None else min(current, delay)
